"""
Document service turning an upload summary into the chat reply.
Classifies the policy type by keyword, pulls out the coverage bullets and
fills the reply template.
"""

import re
from typing import Mapping, Sequence

from briki.models.domain import DocumentType, DocumentUploadResult
from briki.utils.prompts import load_prompts
from briki.utils.logger import get_logger

logger = get_logger(__name__)
PROMPTS = load_prompts()

_BULLET = re.compile(r"^\s*(?:[•·]\s*|[-*]\s+|\d+[.)]\s+)(.+?)\s*$")


class DocumentClassifier:
    """
    Keyword classifier for policy documents.

    The keyword table is ordered: the first document type with a keyword
    present in the text wins, and "general" is the fallback. Pass a different
    table to support another locale.
    """

    def __init__(self, keywords: Mapping[str, Sequence[str]] | None = None):
        """
        Initialize classifier.

        Args:
            keywords: Ordered mapping of document type to lowercase keywords.
                Defaults to the Spanish table in prompts.yaml.
        """
        table = keywords if keywords is not None else PROMPTS["document_classification"]
        self.keywords = {doc_type: [k.lower() for k in words] for doc_type, words in table.items()}

    def classify(self, text: str) -> DocumentType:
        lowered = (text or "").lower()
        for doc_type, words in self.keywords.items():
            matched = next((word for word in words if word in lowered), None)
            if matched:
                logger.info("document_classified", document_type=doc_type, keyword=matched)
                return doc_type
        logger.info("document_classified", document_type="general", keyword=None)
        return "general"


def extract_coverage_bullets(
    summary: str, heading: str | None = None
) -> list[str]:
    """
    Bullets listed under the coverage heading of a summary.

    The block starts after the first line containing the heading and ends at
    the first non-blank line that is not a bullet.

    Returns:
        Bullet texts without their markers; one synthetic bullet when the
        heading is absent or has no bullets
    """
    heading = (heading or PROMPTS["document_replies"]["coverage_heading"]).lower()
    lines = (summary or "").splitlines()

    bullets: list[str] = []
    in_block = False
    for line in lines:
        if not in_block:
            in_block = heading in line.lower()
            continue
        match = _BULLET.match(line)
        if match:
            bullets.append(match.group(1))
        elif line.strip():
            break

    if not bullets:
        return [PROMPTS["document_replies"]["synthetic_bullet"]]
    return bullets


def compose_document_reply(result: DocumentUploadResult, bullets: Sequence[str]) -> str:
    """Fill the reply template for an analyzed document."""
    replies = PROMPTS["document_replies"]
    return replies["reply_template"].format(
        file_name=result.file_name,
        intro=replies["intros"].get(result.document_type, replies["intros"]["general"]),
        bullets="\n".join(f"• {bullet}" for bullet in bullets),
        closing=replies["closing"],
    ).strip()


def suggested_follow_ups(document_type: str) -> list[str]:
    follow_ups = PROMPTS["document_replies"]["follow_ups"]
    return list(follow_ups.get(document_type, follow_ups["general"]))
