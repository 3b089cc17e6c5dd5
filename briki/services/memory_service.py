"""
Memory service for the facts the assistant accumulates about a user.
Merges memory updates without dropping fields and extracts vehicle, trip,
pet, health and location details from user messages.
"""

import re
from copy import deepcopy
from typing import Any, Mapping

from briki.models.domain import INSURANCE_CATEGORIES, Memory
from briki.utils.logger import get_logger

logger = get_logger(__name__)

VEHICLE_KEYWORDS: dict[str, dict[str, str]] = {
    "vespa": {"type": "motorcycle", "make": "Vespa"},
    "moto": {"type": "motorcycle"},
    "scooter": {"type": "motorcycle"},
    "carro": {"type": "car"},
    "auto": {"type": "car"},
    "toyota": {"type": "car", "make": "Toyota"},
    "honda": {"type": "car", "make": "Honda"},
    "chevrolet": {"type": "car", "make": "Chevrolet"},
    "mazda": {"type": "car", "make": "Mazda"},
    "renault": {"type": "car", "make": "Renault"},
}

TRAVEL_KEYWORDS = ("viaje", "viajar", "viajo", "europa", "internacional", "vacaciones")

TRAVEL_DESTINATIONS: dict[str, str] = {
    "europa": "Europa",
    "estados unidos": "Estados Unidos",
    "méxico": "México",
    "españa": "España",
}

PET_KEYWORDS: dict[str, dict[str, str]] = {
    "perro": {"type": "dog"},
    "perrito": {"type": "dog"},
    "gato": {"type": "cat"},
    "golden": {"type": "dog", "breed": "Golden Retriever"},
    "labrador": {"type": "dog", "breed": "Labrador"},
}

HEALTH_KEYWORDS = ("salud", "médico", "medico", "eps", "prepagada", "hospital")

LOCATION_KEYWORDS: dict[str, dict[str, str]] = {
    "bogotá": {"country": "Colombia", "city": "Bogotá"},
    "medellín": {"country": "Colombia", "city": "Medellín"},
    "cali": {"country": "Colombia", "city": "Cali"},
    "colombia": {"country": "Colombia"},
    "méxico": {"country": "México"},
}

# Checked in order; the first category with a hit wins.
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "auto": ("carro", "auto", "moto", "vehículo", "vehiculo", "soat", "vespa", "scooter"),
    "travel": TRAVEL_KEYWORDS,
    "pet": ("mascota", "perro", "perrito", "gato", "golden", "labrador"),
    "health": HEALTH_KEYWORDS,
}

_AGE_PATTERN = re.compile(r"\b(\d{1,3})\s*años\b")
_YEAR_PATTERN = re.compile(r"\b(19[89]\d|20[0-4]\d)\b")
_TRAVELERS_PATTERN = re.compile(r"\b(\d{1,2})\s*(?:personas|viajeros|adultos)\b")


def _contains_word(text: str, keyword: str) -> bool:
    return re.search(r"\b" + re.escape(keyword) + r"\b", text) is not None


def _section(memory: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    # Memory comes back from the reply generator; a section may not be a mapping.
    value = memory.get(key)
    return value if isinstance(value, Mapping) else {}


class MemoryService:
    """
    Service for user memory management: merging updates and extracting
    context from free text.
    """

    @staticmethod
    def merge_memory(base: Mapping[str, Any], update: Mapping[str, Any]) -> Memory:
        """
        Deep-merge an update into memory without mutating either input.

        Nested mappings are merged key by key; any other value in the update
        overwrites. Keys absent from the update are kept.

        Args:
            base: Current memory
            update: New facts

        Returns:
            Merged memory
        """
        merged = deepcopy(dict(base))
        for key, value in update.items():
            if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
                merged[key] = MemoryService.merge_memory(merged[key], value)
            else:
                merged[key] = deepcopy(value)
        return merged

    def extract_context_from_message(self, message: str, memory: Mapping[str, Any]) -> Memory:
        """
        Extract vehicle, travel, pet, health and location facts from a message.

        Args:
            message: User message
            memory: Current memory

        Returns:
            Memory with the extracted facts merged in
        """
        text = message.lower()
        update: Memory = {}

        vehicle: dict[str, Any] = {}
        for keyword, data in VEHICLE_KEYWORDS.items():
            if _contains_word(text, keyword):
                vehicle.update(data)
        if vehicle:
            year = _YEAR_PATTERN.search(text)
            if year:
                vehicle["year"] = int(year.group(1))
            update["vehicle"] = vehicle

        if any(_contains_word(text, keyword) for keyword in TRAVEL_KEYWORDS):
            travel: dict[str, Any] = {}
            for keyword, destination in TRAVEL_DESTINATIONS.items():
                if keyword in text:
                    travel["destination"] = destination
                    break
            if "semana" in text:
                travel["duration"] = "1-2 semanas"
            travelers = _TRAVELERS_PATTERN.search(text)
            if travelers:
                travel["travelers"] = int(travelers.group(1))
            update["travel"] = travel

        pet: dict[str, Any] = {}
        for keyword, data in PET_KEYWORDS.items():
            if _contains_word(text, keyword):
                pet.update(data)
        if pet or _contains_word(text, "mascota"):
            update["pet"] = pet

        if any(_contains_word(text, keyword) for keyword in HEALTH_KEYWORDS):
            health: dict[str, Any] = {}
            age = _AGE_PATTERN.search(text)
            if age:
                health["age"] = int(age.group(1))
            update["health"] = health

        for keyword, data in LOCATION_KEYWORDS.items():
            if _contains_word(text, keyword):
                update["location"] = {**update.get("location", {}), **data}

        if update:
            logger.info("context_extracted", sections=sorted(update))
        return self.merge_memory(memory, update)

    @staticmethod
    def detect_category(message: str, memory: Mapping[str, Any] | None = None) -> str | None:
        """
        Insurance category a message is about.

        Falls back to the last category the user viewed when the message
        itself has no category keyword.
        """
        text = message.lower()
        for category, keywords in CATEGORY_KEYWORDS.items():
            if any(_contains_word(text, keyword) for keyword in keywords):
                return category
        last_viewed = memory.get("lastViewedCategory") if memory else None
        return last_viewed if last_viewed in INSURANCE_CATEGORIES else None

    @staticmethod
    def format_memory(memory: Mapping[str, Any]) -> str:
        """
        Human-readable one-liner of what is known about the user.
        """
        items = []

        location = _section(memory, "location")
        if location.get("country"):
            city = location.get("city")
            items.append(
                f"Ubicación: {city}, {location['country']}" if city else f"Ubicación: {location['country']}"
            )

        vehicle = _section(memory, "vehicle")
        if vehicle.get("type"):
            vehicle_type = "Moto/Scooter" if vehicle["type"] == "motorcycle" else "Auto"
            make = f" {vehicle['make']}" if vehicle.get("make") else ""
            items.append(f"Vehículo: {vehicle_type}{make}")

        travel = _section(memory, "travel")
        if travel.get("destination"):
            duration = f" por {travel['duration']}" if travel.get("duration") else ""
            items.append(f"Viaje: {travel['destination']}{duration}")

        pet = _section(memory, "pet")
        if pet.get("type"):
            pet_type = {"dog": "Perro", "cat": "Gato"}.get(pet["type"], "Mascota")
            breed = f" {pet['breed']}" if pet.get("breed") else ""
            items.append(f"Mascota: {pet_type}{breed}")

        health = _section(memory, "health")
        if health.get("age"):
            items.append(f"Salud: {health['age']} años")

        document = _section(memory, "recentDocument") or _section(memory, "lastUploadedDocument")
        if document.get("fileName"):
            items.append(f"Documento: {document['fileName']}")

        return ", ".join(items)
