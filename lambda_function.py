"""AWS Lambda handler for the event and place sync pipeline."""
import json
import logging
import time
from typing import Any, Dict, Optional

from sync.config import SyncConfig
from sync.errors import MissingCredentialError, SourceNotFoundError
from sync.orchestrator import SyncOrchestrator

# Reused across warm invocations so concurrent syncs collapse
_orchestrator: Optional[SyncOrchestrator] = None


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def get_orchestrator(config: SyncConfig) -> SyncOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = SyncOrchestrator.from_config(config)
    return _orchestrator


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'body': json.dumps(body)
    }


def _error_response(status_code: int, message: str, error: Exception,
                    start_time: float) -> Dict[str, Any]:
    return _response(status_code, {
        'message': message,
        'error': str(error),
        'error_type': type(error).__name__,
        'duration_seconds': round(time.time() - start_time, 2)
    })


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function.

    Supported actions (``event['action']``):
        sync: Full sync of every active source (default, e.g. EventBridge schedule)
        sync_source: Re-sync the source named by ``event['sourceId']``
        events: Return the persisted snapshot without syncing

    Args:
        event: Invocation payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body
    """
    config = SyncConfig.from_env()
    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    event = event if isinstance(event, dict) else {}
    action = event.get('action') or 'sync'
    start_time = time.time()
    logger.info(f"Lambda execution started with action '{action}'")

    try:
        orchestrator = get_orchestrator(config)

        if action == 'events':
            snapshot = orchestrator.load_snapshot()
            return _response(200, snapshot.to_dict())

        if action == 'sync_source':
            source_id = event.get('sourceId') or ''
            if not source_id:
                return _response(400, {'message': 'sourceId is required for sync_source'})
            result = orchestrator.sync_one(source_id)
            logger.info(
                f"Source {result.source_id} synced: {result.count} records, "
                f"{len(result.errors)} errors"
            )
            return _response(200, result.to_dict())

        if action != 'sync':
            return _response(400, {'message': f"Unknown action: {action}"})

        snapshot = orchestrator.sync(event.get('targetKey') or 'default')
        duration = time.time() - start_time
        logger.info(
            f"Lambda execution completed successfully in {duration:.2f}s",
            extra={
                'event_count': snapshot.event_count,
                'spot_count': snapshot.spot_count,
                'ingestion_errors': len(snapshot.ingestion_errors)
            }
        )
        return _response(200, snapshot.to_dict())

    except SourceNotFoundError as e:
        logger.warning(f"Source not found: {e}")
        return _error_response(404, 'Source not found', e, start_time)

    except MissingCredentialError as e:
        logger.error(f"Sync cannot run: {e}", extra={'error_type': type(e).__name__})
        return _error_response(500, 'Sync failed', e, start_time)

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(time.time() - start_time, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _error_response(500, 'Sync failed', e, start_time)
