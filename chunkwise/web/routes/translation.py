"""Document translation API routes."""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional, Tuple

from flask import Blueprint, current_app, jsonify, request

from chunkwise.ai.service import TranslationError, validate_translator_config
from chunkwise.chunking.planner import ChunkPlanner
from chunkwise.chunking.types import ChunkConfig
from chunkwise.document.nodes import find_document_problem
from chunkwise.logger import get_logger
from chunkwise.web.tasks import (
    cancel_job,
    create_translation_job,
    get_job,
    retry_translation_job,
    serialize_job,
)

translation_bp = Blueprint("translation", __name__)
logger = get_logger(__name__)

_TRANSLATOR_OVERRIDES = {
    "provider": "provider",
    "sourceLanguage": "source_language",
    "targetLanguage": "target_language",
}


def _app_config() -> Dict[str, Any]:
    return current_app.config["CHUNKWISE_CONFIG"]


def _read_document(data: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    document = data.get("document")
    if document is None:
        return None, "document is required"
    problem = find_document_problem(document)
    if problem:
        return None, f"Invalid document: {problem}"
    return document, None


def _read_chunk_config(data: Dict[str, Any], config: Dict[str, Any]) -> ChunkConfig:
    """Request chunk settings layered over the configured ones; raises ValueError."""
    overrides = data.get("chunkConfig") or {}
    if not isinstance(overrides, dict):
        raise ValueError("chunkConfig must be an object")
    merged = dict(config.get("chunking") or {})
    merged.update(overrides)
    return ChunkConfig.from_dict(merged)


def _request_config(data: Dict[str, Any]) -> Dict[str, Any]:
    """App config with per-request translator overrides applied."""
    config = copy.deepcopy(_app_config())
    translator = config.setdefault("translator", {})
    for key, name in _TRANSLATOR_OVERRIDES.items():
        value = data.get(key)
        if isinstance(value, str) and value:
            translator[name] = value
    return config


@translation_bp.post("/translate")
def start_translation_job():
    """Start an asynchronous translation job for a document."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}

    document, error = _read_document(data)
    if error:
        return jsonify({"error": error}), 400

    config = _request_config(data)
    try:
        chunk_config = _read_chunk_config(data, config)
    except ValueError as e:
        return jsonify({"error": f"Invalid chunk config: {e}"}), 400

    try:
        validate_translator_config(config)
    except TranslationError as e:
        error_response = {"error": str(e)}
        if e.code:
            error_response["code"] = e.code
        if e.details:
            error_response["details"] = e.details
        return jsonify(error_response), 400

    try:
        job = create_translation_job(
            document,
            config,
            chunk_config=chunk_config,
            translation_rules=data.get("translationRules"),
            project_context=data.get("projectContext"),
            glossary=data.get("glossary"),
        )
    except Exception as e:
        logger.exception(f"Failed to create translation job: {e}")
        return jsonify({"error": f"Failed to create translation job: {str(e)}"}), 500

    return jsonify({"job_id": job.job_id, "job": serialize_job(job)}), 202


@translation_bp.get("/jobs/<job_id>")
def get_translation_job(job_id: str):
    job = get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found or expired"}), 404
    return jsonify(serialize_job(job))


@translation_bp.post("/jobs/<job_id>/cancel")
def cancel_translation_job(job_id: str):
    if not get_job(job_id):
        return jsonify({"error": "Job not found or expired"}), 404
    if cancel_job(job_id):
        return jsonify({"status": "cancellation_requested", "job_id": job_id})
    return jsonify({"error": "Job has already finished and cannot be cancelled"}), 400


@translation_bp.post("/jobs/<job_id>/retry")
def retry_failed_chunks(job_id: str):
    """Retranslate only the chunks a finished job failed on."""
    if not get_job(job_id):
        return jsonify({"error": "Job not found or expired"}), 404
    job = retry_translation_job(job_id)
    if not job:
        return jsonify({"error": "Job is still running or has no failed chunks to retry"}), 400
    return jsonify({"job_id": job.job_id, "job": serialize_job(job)}), 202


@translation_bp.post("/chunking/preview")
def preview_chunking():
    """Show how a document would be chunked without translating it."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}

    document, error = _read_document(data)
    if error:
        return jsonify({"error": error}), 400

    try:
        chunk_config = _read_chunk_config(data, _app_config())
    except ValueError as e:
        return jsonify({"error": f"Invalid chunk config: {e}"}), 400

    plan = ChunkPlanner().build_plan(document, chunk_config)
    payload = plan.info.to_dict()
    payload["was_chunked"] = plan.was_chunked
    payload["chunks"] = [
        {
            "index": chunk.index,
            "node_count": len(chunk.nodes),
            "estimated_tokens": chunk.estimated_tokens,
        }
        for chunk in plan.chunks
    ]
    return jsonify(payload)
