"""Topic catalogue management.

This module loads the catalogue of topics and subtopics offered to quiz
clients from a YAML file. The catalogue is informational: generation accepts
any topic/subtopic, the catalogue only drives what clients present.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class TopicEntry(BaseModel):
    """A topic and the subtopics offered under it.

    Attributes:
        name: Topic name shown to clients
        subtopics: Subtopic names, in display order
    """

    name: str = Field(..., min_length=1)
    subtopics: List[str] = Field(..., min_length=1)

    @field_validator("subtopics")
    @classmethod
    def validate_subtopics(cls, v: List[str]) -> List[str]:
        """Reject blank or duplicated subtopics."""
        cleaned = [s.strip() for s in v]
        if any(not s for s in cleaned):
            raise ValueError("Subtopic names must not be blank")
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("Subtopic names must be unique within a topic")
        return cleaned


class TopicCatalog(BaseModel):
    """Complete topic catalogue.

    Attributes:
        version: Catalogue version
        topics: Topics in display order
    """

    version: str
    topics: List[TopicEntry] = Field(..., min_length=1)

    @field_validator("topics")
    @classmethod
    def validate_unique_topics(cls, v: List[TopicEntry]) -> List[TopicEntry]:
        """Ensure topic names are unique."""
        names = [t.name for t in v]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate topics in catalogue: {sorted(duplicates)}")
        return v

    def subtopics_for(self, topic: str) -> Optional[List[str]]:
        """Get the subtopics of a topic.

        Returns:
            Subtopic names, or None if the topic is not in the catalogue
        """
        for entry in self.topics:
            if entry.name == topic:
                return list(entry.subtopics)
        return None

    def contains(self, topic: str, sub_topic: str) -> bool:
        """Check whether a topic/subtopic pair is in the catalogue."""
        subtopics = self.subtopics_for(topic)
        return subtopics is not None and sub_topic in subtopics

    def as_mapping(self) -> Dict[str, List[str]]:
        """Topic name -> subtopics, in catalogue order."""
        return {entry.name: list(entry.subtopics) for entry in self.topics}


def load_topic_catalog(config_path: str | Path) -> TopicCatalog:
    """Load and validate the topic catalogue.

    Args:
        config_path: Path to the catalogue YAML file

    Returns:
        Parsed and validated catalogue

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the catalogue is invalid
        yaml.YAMLError: If YAML parsing fails
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Topic catalogue not found: {path}")

    logger.info(f"Loading topic catalogue from {path}")

    try:
        with open(path, "r") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML topic catalogue: {e}")
        raise

    if not isinstance(raw_config, dict):
        raise ValueError(f"Topic catalogue must be a mapping, got {type(raw_config).__name__}")

    try:
        catalog = TopicCatalog(**raw_config)
    except ValidationError as e:
        raise ValueError(f"Invalid topic catalogue: {e}") from e

    logger.info(
        f"Loaded topic catalogue version {catalog.version} "
        f"with {len(catalog.topics)} topics"
    )
    return catalog
