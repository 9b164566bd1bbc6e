"""
Translator Module

This module provides the chunk translator service and its providers.
"""

from chunkwise.ai.exceptions import ChunkTranslationError, TranslationError
from chunkwise.ai.service import TranslatorService, validate_translator_config

__all__ = ['ChunkTranslationError', 'TranslationError', 'TranslatorService', 'validate_translator_config']
