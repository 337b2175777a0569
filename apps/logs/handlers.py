import json
import logging
import threading
from typing import Any, Dict

from django.conf import settings
from django.db import DatabaseError, connection
from django.utils import timezone


class DatabaseLogHandler(logging.Handler):
    """Logging handler that persists records to the `logs` table off the request thread."""

    def emit(self, record: logging.LogRecord) -> None:
        context: Dict[str, Any] = getattr(record, "context", {}) or {}
        extra_data: Dict[str, Any] = getattr(record, "extra_data", {}) or {}
        environment = getattr(record, "environment", None) or getattr(settings, "APP_ENV", "local")
        channel = getattr(record, "channel", record.name)
        message = self.format(record)

        def _emit_sync():
            try:
                with connection.cursor() as cursor:
                    cursor.execute(
                        """
                        INSERT INTO logs (level, channel, message, context, extra, environment, created_at)
                        VALUES (%s, %s, %s, %s, %s, %s, %s)
                        """,
                        [
                            record.levelname.lower(),
                            channel,
                            message,
                            json.dumps(context, default=str),
                            json.dumps(extra_data, default=str),
                            environment,
                            timezone.now(),
                        ],
                    )
            except DatabaseError:
                return
            except Exception:
                self.handleError(record)
            finally:
                connection.close()

        thread = threading.Thread(target=_emit_sync)
        thread.daemon = True
        thread.start()
