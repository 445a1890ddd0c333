"""
Activity Logger Utility

Provides activity logging for the emotion fusion service.
Logs are written to JSONL files (one per day) for easy parsing and dashboard
display. Logging is off unless enabled in config ("activity_log.enabled") or
with FUSION_ACTIVITY_LOG=true; failures to write are logged and ignored.
"""

import json
import os
import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Any

from emotion_fusion.config_loader import load_config

logger = logging.getLogger(__name__)

# Load configuration
_log_config = load_config().get("activity_log", {})

# Base directory for activity logs
BASE_LOG_DIR = os.getenv("FUSION_ACTIVITY_LOG_DIR", _log_config.get("directory", "data/activity_logs"))

# Log directory for fusion events
FUSION_LOG_DIR = os.path.join(BASE_LOG_DIR, "fusion")

# Lock for thread-safe file writing
_fusion_lock = threading.Lock()


def is_enabled() -> bool:
    """Check whether activity logging is switched on."""
    env_value = os.getenv("FUSION_ACTIVITY_LOG")
    if env_value is not None:
        return env_value.lower() == "true"
    return bool(_log_config.get("enabled", False))


def _ensure_log_dir(log_dir: str):
    """Ensure log directory exists."""
    os.makedirs(log_dir, exist_ok=True)


def _get_log_file(log_dir: str, prefix: str) -> str:
    """
    Get log file path for today's date.

    Args:
        log_dir: Log directory path
        prefix: File prefix (e.g., "fusion")

    Returns:
        Path to log file
    """
    _ensure_log_dir(log_dir)
    today = datetime.now().strftime("%Y%m%d")
    return os.path.join(log_dir, f"{prefix}_activity_{today}.jsonl")


def log_fusion_activity(
    session_id: str,
    timestamp: datetime,
    status: str,  # "success", "discarded", "error"
    operation: str,
    modality: Optional[str] = None,
    emotional_state: Optional[Dict[str, float]] = None,
    confidence: Optional[float] = None,
    active_modalities: Optional[List[str]] = None,
    error: Optional[str] = None,
    duration_seconds: Optional[float] = None,
    log_dir: Optional[str] = None
) -> Optional[Dict[str, Any]]:
    """
    Log one fusion event.

    Args:
        session_id: Session label
        timestamp: When the operation started
        status: Activity status ("success", "discarded", "error")
        operation: Orchestrator operation (e.g. "record_reading")
        modality: Modality that reported
        emotional_state: Fused stress/clarity/engagement
        confidence: Fused confidence
        active_modalities: Modalities that contributed
        error: Error message (if failed)
        duration_seconds: Processing duration in seconds
        log_dir: Override of the fusion log directory

    Returns:
        The log entry written, or None when logging is disabled or failed
    """
    if not is_enabled():
        return None

    log_entry = {
        "timestamp": timestamp.isoformat(),
        "logged_at": datetime.now().isoformat(),
        "session_id": session_id,
        "status": status,
        "operation": operation,
        "modality": modality,
        "emotional_state": emotional_state,
        "confidence": confidence,
        "active_modalities": active_modalities or [],
        "error": error,
        "duration_seconds": duration_seconds
    }

    try:
        log_file = _get_log_file(log_dir or FUSION_LOG_DIR, "fusion")
        with _fusion_lock:
            with open(log_file, 'a', encoding='utf-8') as f:
                f.write(json.dumps(log_entry, ensure_ascii=False) + '\n')
        logger.debug(f"Logged fusion activity to {log_file}")
        return log_entry
    except Exception as e:
        logger.warning(f"Failed to log fusion activity: {e}", exc_info=True)
        return None


def read_fusion_activity(date: Optional[str] = None, log_dir: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Read fusion activity entries for a day.

    Args:
        date: Day in YYYYMMDD format (defaults to today)
        log_dir: Override of the fusion log directory

    Returns:
        List of log entries (empty if the file does not exist)
    """
    date = date or datetime.now().strftime("%Y%m%d")
    log_file = os.path.join(log_dir or FUSION_LOG_DIR, f"fusion_activity_{date}.jsonl")
    if not os.path.exists(log_file):
        return []

    entries = []
    with open(log_file, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping malformed activity log line: {e}")
    return entries
