"""
Django app configuration for the telemetry collector.

This module wires the process-wide hooks:
- the database hook routing queries to the current unit of work
- the logging handler forwarding records into the current unit
- instrumentation of outgoing ``requests`` calls
- the ``sys.excepthook`` reporting uncaught exceptions
"""

import logging

from django.apps import AppConfig as BaseAppConfig

logger = logging.getLogger(__name__)


class AppConfig(BaseAppConfig):
    """Django app configuration for the telemetry collector."""

    name = "telemetry_collector"
    verbose_name = "Telemetry Collector"
    label = "telemetry_collector"

    def ready(self):
        """Install the process-wide hooks once Django has loaded."""
        try:
            from .config import get_telemetry_settings

            settings = get_telemetry_settings()
            if not settings.is_active:
                logger.debug("Telemetry collection disabled (no token or disabled)")
                return

            self._setup_query_hook(settings)
            self._setup_log_handler(settings)
            self._setup_requests_instrumentation(settings)
            self._setup_excepthook(settings)
            logger.debug("Telemetry collector initialized")
        except Exception as e:
            logger.error(f"Error initializing telemetry collector: {e}")
            if self._is_debug_mode():
                raise

    def _setup_query_hook(self, settings):
        if not settings.capture_queries:
            return
        try:
            from django.db.backends.signals import connection_created

            from .context import hook_new_connection

            connection_created.connect(
                hook_new_connection, dispatch_uid="telemetry_collector.query_hook"
            )
        except Exception as e:
            logger.warning(f"Could not connect query hook: {e}")

    def _setup_log_handler(self, settings):
        if not settings.capture_logs:
            return
        try:
            from .logging_handler import install_log_handler

            install_log_handler(settings.log_level)
        except Exception as e:
            logger.warning(f"Could not install telemetry log handler: {e}")

    def _setup_requests_instrumentation(self, settings):
        if not settings.instrument_requests:
            return
        try:
            from .http import instrument_requests

            instrument_requests()
        except Exception as e:
            logger.warning(f"Could not instrument outgoing requests: {e}")

    def _setup_excepthook(self, settings):
        if not settings.capture_uncaught:
            return
        try:
            from .exceptions import install_excepthook

            install_excepthook()
        except Exception as e:
            logger.warning(f"Could not install exception hook: {e}")

    def _is_debug_mode(self):
        from django.conf import settings as django_settings

        return getattr(django_settings, "DEBUG", False)
