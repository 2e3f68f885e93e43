"""
services/mlflow_service.py
--------------------------
MLflow experiment tracking for chat workflow calls.

What this tracks:
  - Every chat turn sent to the external workflow is logged as an MLflow run
    inside the "chatdesk-workflow" experiment.
  - Parameters logged: chat mode, tenant_id, user_id, retry flag
  - Metrics logged: latency, attempts used, response length
  - Tags: fallback flag, failure category, environment

Tracking is off unless MLFLOW_ENABLED=true, and a tracking failure never
breaks the chat request.

View the MLflow UI:
  mlflow ui --port 5001
"""

from typing import Optional

from chatdesk.core.config import settings
from chatdesk.core.logging import get_logger

logger = get_logger(__name__)

# MLflow experiment name — all runs are grouped under this
EXPERIMENT_NAME = "chatdesk-workflow"


def _get_mlflow():
    """
    Lazy import mlflow so the app starts without the tracking extra.
    Returns the mlflow module or None when tracking is unavailable.
    """
    if not settings.MLFLOW_ENABLED:
        return None
    try:
        import mlflow
        return mlflow
    except ImportError:
        logger.warning("mlflow not installed — tracking disabled. Install the 'tracking' extra")
        return None


def setup_mlflow() -> None:
    """
    Called once at application startup.
    Creates the experiment if it doesn't exist.
    """
    mlflow = _get_mlflow()
    if mlflow is None:
        return

    mlflow.set_tracking_uri(settings.MLFLOW_TRACKING_URI)

    if mlflow.get_experiment_by_name(EXPERIMENT_NAME) is None:
        mlflow.create_experiment(EXPERIMENT_NAME)
        logger.info("MLflow experiment created", experiment=EXPERIMENT_NAME)

    mlflow.set_experiment(EXPERIMENT_NAME)
    logger.info("MLflow tracking initialised", uri=settings.MLFLOW_TRACKING_URI)


def track_workflow_call(
    *,
    tenant_id: str,
    user_id: str,
    chat_mode: str,
    latency_ms: float,
    attempts: int,
    response_length: int,
    fallback: bool,
    is_retry: bool = False,
    failure_category: Optional[str] = None,
) -> Optional[str]:
    """
    Log a single workflow round-trip as an MLflow run.

    Returns:
        The MLflow run_id string, or None if tracking is off or failed.
    """
    mlflow = _get_mlflow()
    if mlflow is None:
        return None

    try:
        mlflow.set_experiment(EXPERIMENT_NAME)

        with mlflow.start_run() as run:
            mlflow.log_params({
                "chat_mode":   chat_mode,
                "tenant_id":   tenant_id,
                "user_id":     user_id,
                "is_retry":    is_retry,
                "environment": settings.APP_ENV,
            })

            mlflow.log_metrics({
                "latency_ms":      latency_ms,
                "attempts":        float(attempts),
                "response_length": float(response_length),
            })

            mlflow.set_tags({
                "tenant_id":        tenant_id,
                "fallback":         str(fallback).lower(),
                "failure_category": failure_category or "none",
            })

            run_id = run.info.run_id
            logger.info("MLflow run logged", run_id=run_id, latency_ms=latency_ms)
            return run_id

    except Exception as exc:
        # Never let tracking failures break the main request
        logger.warning("MLflow tracking failed (non-fatal)", error=str(exc))
        return None
