"""Configurable scoring tables and engine thresholds."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

MERGE_STRATEGIES = ("sum", "max")
SOURCE_QUALITY_CAP = 20


@dataclass
class ScoringConfig:
    """Scoring tables and operational thresholds."""

    # Scores older than this are recomputed before ranking or routing
    freshness_hours: int = 24
    score_history_limit: int = 30

    # How behavioral counters combine when a duplicate capture is merged
    merge_strategy: str = "sum"

    average_patient_value: int = 2500
    assignment_follow_up_hours: int = 24
    default_timezone: str = "America/Los_Angeles"
    bulk_score_max: int = 500

    # Source quality sub-score (0-20)
    source_quality: Dict[str, int] = field(default_factory=lambda: {
        "referral": 20,
        "provider_referral": 20,
        "walk_in": 18,
        "google_search": 15,
        "phone_call": 15,
        "google_ads": 12,
        "facebook_ads": 10,
        "website": 10,
        "insurance_directory": 8,
        "social_media": 5,
        "other": 5,
    })

    # Conversion probability multipliers; referral-type sources convert best
    source_multipliers: Dict[str, float] = field(default_factory=lambda: {
        "provider_referral": 1.6,
        "referral": 1.5,
        "walk_in": 1.4,
        "phone_call": 1.3,
        "google_search": 1.2,
        "google_ads": 1.1,
        "website": 1.0,
        "facebook_ads": 0.9,
        "insurance_directory": 0.85,
        "social_media": 0.8,
        "other": 0.7,
    })

    updated_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if self.merge_strategy not in MERGE_STRATEGIES:
            raise ValueError(f"merge_strategy must be one of {MERGE_STRATEGIES}, got {self.merge_strategy!r}")
        if self.freshness_hours <= 0:
            raise ValueError("freshness_hours must be positive")
        if self.score_history_limit < 1:
            raise ValueError("score_history_limit must be at least 1")
        for source, score in self.source_quality.items():
            if not 0 <= score <= SOURCE_QUALITY_CAP:
                raise ValueError(f"Source quality for {source} must be within 0-{SOURCE_QUALITY_CAP}")
        for source, multiplier in self.source_multipliers.items():
            if multiplier <= 0:
                raise ValueError(f"Source multiplier for {source} must be positive")

    def source_score(self, source: str) -> int:
        """Source quality sub-score; unknown sources score as ``other``."""
        return self.source_quality.get(source, self.source_quality.get("other", 5))

    def source_multiplier(self, source: str) -> float:
        return self.source_multipliers.get(source, self.source_multipliers.get("other", 0.7))


class ScoringConfigManager:
    """Manage and persist scoring configuration."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize config manager."""
        self.config_path = config_path or Path.home() / ".practice-growth" / "scoring_config.json"
        self.config = self._load_config()

    def _load_config(self) -> ScoringConfig:
        """Load configuration from file, falling back to defaults."""
        if not self.config_path.exists():
            return ScoringConfig()

        try:
            with open(self.config_path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading scoring config from {self.config_path}: {e}")
            return ScoringConfig()

        defaults = ScoringConfig()
        return ScoringConfig(
            freshness_hours=data.get("freshness_hours", defaults.freshness_hours),
            score_history_limit=data.get("score_history_limit", defaults.score_history_limit),
            merge_strategy=data.get("merge_strategy", defaults.merge_strategy),
            average_patient_value=data.get("average_patient_value", defaults.average_patient_value),
            assignment_follow_up_hours=data.get("assignment_follow_up_hours", defaults.assignment_follow_up_hours),
            default_timezone=data.get("default_timezone", defaults.default_timezone),
            bulk_score_max=data.get("bulk_score_max", defaults.bulk_score_max),
            source_quality={**defaults.source_quality, **data.get("source_quality", {})},
            source_multipliers={**defaults.source_multipliers, **data.get("source_multipliers", {})},
        )

    def save_config(self):
        """Save configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "freshness_hours": self.config.freshness_hours,
            "score_history_limit": self.config.score_history_limit,
            "merge_strategy": self.config.merge_strategy,
            "average_patient_value": self.config.average_patient_value,
            "assignment_follow_up_hours": self.config.assignment_follow_up_hours,
            "default_timezone": self.config.default_timezone,
            "bulk_score_max": self.config.bulk_score_max,
            "source_quality": self.config.source_quality,
            "source_multipliers": self.config.source_multipliers,
            "updated_at": self.config.updated_at.isoformat(),
        }
        with open(self.config_path, 'w') as f:
            json.dump(data, f, indent=2)

    def set_source_multiplier(self, source: str, multiplier: float):
        """Set the conversion multiplier for a lead source."""
        if multiplier <= 0:
            raise ValueError("Source multiplier must be positive")
        self.config.source_multipliers[source] = multiplier
        self.config.updated_at = datetime.now()
        self.save_config()

    def set_source_quality(self, source: str, score: int):
        """Set the quality sub-score for a lead source."""
        if not 0 <= score <= SOURCE_QUALITY_CAP:
            raise ValueError(f"Source quality must be within 0-{SOURCE_QUALITY_CAP}")
        self.config.source_quality[source] = score
        self.config.updated_at = datetime.now()
        self.save_config()

    def set_merge_strategy(self, strategy: str):
        """Choose how duplicate captures combine behavioral counters."""
        if strategy not in MERGE_STRATEGIES:
            raise ValueError(f"merge_strategy must be one of {MERGE_STRATEGIES}")
        self.config.merge_strategy = strategy
        self.config.updated_at = datetime.now()
        self.save_config()
