import copy
import json
import os
from pathlib import Path
from typing import Dict, Any, Optional, Union

from chunkwise.logger import get_logger

logger = get_logger(__name__)

# Token thresholds for the chunking pipeline
CHUNKING_THRESHOLD = 3000
MAX_COMPLEXITY_PENALTY = 2500
LIST_ITEM_PENALTY = 80
NESTING_DEPTH_PENALTY = 150

# Provider configuration constants
SUPPORTED_PROVIDERS = ["mock", "proxy", "openai"]

PROVIDER_DEFAULTS = {
    "max_retries": 3,
    "timeout": 120
}

# Get base directory (project root)
BASE_DIR = Path(__file__).parent.parent
CONFIG_DIR = BASE_DIR / "config"
CONFIG_FILE = CONFIG_DIR / "config.json"
CONFIG_ENV_VAR = "CHUNKWISE_CONFIG"

DEFAULT_SYSTEM_MESSAGE = "You are an experienced professional translator."

# Default prompts
DEFAULT_PROMPTS = {
    "document_translation_prompt": {
        "version": "1.0",
        "description": "Markdown chunk translation prompt used by chat-completion providers",
        "prompt": """Translate the text of the Markdown document below from {source_language} to {target_language} so that it reads naturally.

=== OUTPUT FORMAT ===
Output ONLY in this exact form:

---TRANSLATION_START---
[translated Markdown]
---TRANSLATION_END---

Never add explanations, greetings or any text outside the markers.

=== TRANSLATION RULES ===
- Keep the document structure and formatting (headings, lists, bold, italic, links, tables) and translate only the text.
- If an HTML table (<table>...</table>) is present, keep its structure and attributes and translate only the cell text.
- Keep link URLs, numbers, code, tags, HTML comments and variables (e.g. {{var}}, <tag>, %s) unchanged.
- When unsure, preserve the original wording rather than inventing.
{context_section}
This is part {chunk_number} of {total_chunks} of a longer document.

---SOURCE_START---
{source_markdown}
---SOURCE_END---"""
    }
}

# Default configuration templates
DEFAULT_CONFIG = {
    "chunking": {
        "min_chunk_tokens": 1000,
        "max_chunk_tokens": 16384,
        "target_chunk_tokens": 8192,
        "overhead_per_chunk": 500,
        "expansion_factor": 1.3
    },
    "translator": {
        "provider": "mock",
        "api_url": "",
        "api_key": "YOUR_API_KEY_HERE",
        "model": "",
        "source_language": "",
        "target_language": "en",
        "max_retries": 3,
        "timeout": 120
    },
    "log_mode": "off"
}


def get_config_path(path: Optional[Union[str, Path]] = None) -> Path:
    """Resolve the config file location: explicit path, then env var, then the default."""
    if path:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return CONFIG_FILE


def _merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_dicts(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def create_default_config(path: Optional[Union[str, Path]] = None) -> Path:
    """Create the default config.json file."""
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w', encoding='utf-8') as f:
        json.dump(DEFAULT_CONFIG, f, indent=4, ensure_ascii=False)
    logger.info(f"Created default config file: {config_path}")
    return config_path


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Load the configuration file merged over the defaults.

    A missing file yields the defaults. A corrupt file is logged and the
    defaults are used instead.
    """
    config_path = get_config_path(path)
    if not config_path.exists():
        logger.debug(f"No config file at {config_path}, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            stored = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse config file {config_path}: {e}")
        logger.warning("Using default configuration")
        return copy.deepcopy(DEFAULT_CONFIG)
    except OSError as e:
        logger.error(f"Failed to read config file {config_path}: {e}")
        logger.warning("Using default configuration")
        return copy.deepcopy(DEFAULT_CONFIG)

    if not isinstance(stored, dict):
        logger.warning(f"Config file {config_path} does not hold an object, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    logger.debug(f"Configuration loaded from {config_path}")
    return _merge_dicts(DEFAULT_CONFIG, stored)


def save_config(config: Dict[str, Any], path: Optional[Union[str, Path]] = None):
    """Save the configuration file."""
    config_path = get_config_path(path)
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=4, ensure_ascii=False)
        logger.info(f"Configuration saved to {config_path}")
    except OSError as e:
        logger.error(f"Failed to save config file {config_path}: {e}")
        raise

    from chunkwise.logger import refresh_log_mode
    refresh_log_mode()


def get_chunk_config(config: Optional[Dict[str, Any]] = None):
    """Build a ChunkConfig from the "chunking" section of the configuration."""
    from chunkwise.chunking.types import ChunkConfig

    if config is None:
        config = load_config()
    return ChunkConfig.from_dict(config.get("chunking") or {})


def get_prompt(prompt_name: str = "document_translation_prompt") -> Dict[str, Any]:
    """Get a specific prompt by name."""
    return copy.deepcopy(DEFAULT_PROMPTS.get(prompt_name, DEFAULT_PROMPTS["document_translation_prompt"]))
