"""
Configuration utilities for VerifyMyProvider.

Provides configuration loading, defaults, merging and validation for the
confidence scorer, freshness evaluator, verification service and
maintenance scripts.
"""

import copy
import logging
import yaml
from typing import Dict, Any
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/verify_my_provider.yaml"


def get_default_config() -> Dict[str, Any]:
    """
    Get default configuration.

    Thresholds and weights encode domain policy (Ndumele et al. 2018,
    Mortensen et al. 2015) and can be overridden from YAML.

    Returns:
        Default configuration dictionary
    """
    return {
        "database": {
            "path": "data/verifymyprovider.db"
        },
        "confidence": {
            "data_source_scores": {
                "CMS_NPPES": 25,
                "CMS_PLAN_FINDER": 25,
                "CMS_DATA": 25,
                "CARRIER_API": 20,
                "CARRIER_DATA": 20,
                "PROVIDER_PORTAL": 20,
                "USER_UPLOAD": 15,
                "PHONE_CALL": 15,
                "CROWDSOURCE": 15,
                "AUTOMATED": 10
            },
            "default_data_source_score": 10,
            "recency_max_age_days": 180,
            "verification_points_per_check": 5,
            "verification_saturation": 5,
            "min_verifications_for_high_confidence": 3,
            "level_thresholds": {
                "VERY_HIGH": 91,
                "HIGH": 76,
                "MEDIUM": 51,
                "LOW": 26
            }
        },
        "freshness": {
            "thresholds": {
                "MENTAL_HEALTH": 30,
                "PRIMARY_CARE": 60,
                "SPECIALIST": 60,
                "HOSPITAL_BASED": 90,
                "OTHER": 60
            },
            "verify_url": "/verify"
        },
        "verification": {
            "ttl_days": 180,
            "sybil_window_days": 30,
            "min_verifications_for_consensus": 3,
            "min_confidence_for_status_change": 60,
            "max_recent_results": 100
        },
        "maintenance": {
            "delete_batch_size": 1000,
            "hash_batch_size": 1000,
            "enrichment_batch_size": 1000,
            "recalculation_batch_size": 100,
            "fuzzy_min_ratio": 92
        },
        "enrichment": {
            "facility_keywords": [
                "hospital", "medical center", "medical centre", "clinic",
                "health center", "health centre", "healthcare", "health system",
                "health services", "physicians", "medical group",
                "medical associates", "surgery center", "surgical center",
                "urgent care", "emergency", "rehabilitation", "rehab center",
                "nursing", "care center", "wellness", "pediatric", "orthopedic",
                "cardiology", "oncology", "radiology", "imaging", "laboratory",
                "diagnostics", "specialty", "family medicine",
                "internal medicine", "primary care"
            ]
        },
        "export": {
            "output_dir": "exports/providers",
            "default_country_code": "US"
        }
    }


def merge_configs(base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge two configuration dictionaries.

    Args:
        base_config: Base configuration
        override_config: Override configuration

    Returns:
        Merged configuration
    """
    merged = copy.deepcopy(base_config)

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load configuration from YAML file, layered over the defaults.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary
    """
    defaults = get_default_config()

    config_file = Path(config_path)
    if not config_file.exists():
        logger.warning(f"Configuration file {config_path} not found, using defaults")
        return defaults

    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load configuration from {config_path}: {e}")
        return defaults

    if not isinstance(config, dict):
        logger.error(f"Configuration in {config_path} is not a mapping, using defaults")
        return defaults

    logger.info(f"Loaded configuration from {config_path}")
    return merge_configs(defaults, config)


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate configuration.

    Args:
        config: Configuration dictionary

    Returns:
        True if configuration is valid, False otherwise
    """
    required_sections = ["confidence", "freshness", "verification"]

    for section in required_sections:
        if section not in config:
            logger.error(f"Missing required configuration section: {section}")
            return False

    confidence_config = config.get("confidence", {})
    source_scores = confidence_config.get("data_source_scores", {})
    if not isinstance(source_scores, dict):
        logger.error("confidence.data_source_scores must be a mapping")
        return False

    for source, score in source_scores.items():
        if not isinstance(score, (int, float)) or not 0 <= score <= 25:
            logger.error(f"confidence.data_source_scores.{source} must be a number between 0 and 25")
            return False

    max_age = confidence_config.get("recency_max_age_days", 180)
    if not isinstance(max_age, (int, float)) or max_age <= 0:
        logger.error("confidence.recency_max_age_days must be a positive number")
        return False

    thresholds = config.get("freshness", {}).get("thresholds", {})
    for category, days in thresholds.items():
        if not isinstance(days, int) or days <= 0:
            logger.error(f"freshness.thresholds.{category} must be a positive integer")
            return False

    verification_config = config.get("verification", {})
    for key in ("ttl_days", "sybil_window_days"):
        value = verification_config.get(key, 1)
        if not isinstance(value, int) or value <= 0:
            logger.error(f"verification.{key} must be a positive integer")
            return False

    logger.info("Configuration validation passed")
    return True


def save_config(config: Dict[str, Any], config_path: str) -> bool:
    """
    Save configuration to YAML file.

    Args:
        config: Configuration dictionary
        config_path: Path to save configuration

    Returns:
        True if successful, False otherwise
    """
    try:
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w') as f:
            yaml.dump(config, f, default_flow_style=False, indent=2)

        logger.info(f"Saved configuration to {config_path}")
        return True

    except OSError as e:
        logger.error(f"Failed to save configuration to {config_path}: {e}")
        return False
