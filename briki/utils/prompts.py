"""
Centralized loading of prompts and user-facing Spanish strings.
"""

import yaml
from pathlib import Path
from functools import lru_cache

PROMPTS_PATH = Path(__file__).parent.parent / "prompts.yaml"


@lru_cache(maxsize=1)
def load_prompts() -> dict:
    """
    Loads prompts from the packaged YAML file.
    Only loads once and reuses the result.

    Returns:
        Dictionary containing all prompt configurations

    Raises:
        FileNotFoundError: If prompts.yaml is not found
    """
    with open(PROMPTS_PATH, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)
