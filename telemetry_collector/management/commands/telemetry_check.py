from django.core.management.base import BaseCommand
from django.utils import timezone

from telemetry_collector.config import get_telemetry_settings
from telemetry_collector.context import UNIT_CONSOLE, finish_unit, start_unit
from telemetry_collector.middleware import path_is_tracked


def _mask_token(token):
    if not token:
        return "(not set)"
    if len(token) <= 8:
        return "*" * len(token)
    return f"{token[:4]}...{token[-4:]}"


class Command(BaseCommand):
    help = "Show the resolved telemetry configuration and optionally send a check payload."

    def add_arguments(self, parser):
        parser.add_argument(
            "--send",
            action="store_true",
            help="Send a check payload to the collector endpoint.",
        )
        parser.add_argument(
            "--path",
            default=None,
            help="Report whether requests to this path would be tracked.",
        )

    def handle(self, *args, **options):
        settings = get_telemetry_settings()

        self.stdout.write(f"Enabled: {settings.enabled}")
        self.stdout.write(f"Token: {_mask_token(settings.token)}")
        self.stdout.write(f"Endpoint: {settings.endpoint}")
        self.stdout.write(f"Environment: {settings.environment or '-'}")
        self.stdout.write(f"Include paths: {', '.join(settings.include_paths) or '-'}")
        self.stdout.write(f"Exclude paths: {', '.join(settings.exclude_paths) or '-'}")
        self.stdout.write(f"N+1 threshold: {settings.n_plus_one_threshold}")

        path = options.get("path")
        if path:
            tracked = path_is_tracked(path, settings.include_paths, settings.exclude_paths)
            self.stdout.write(f"Path {path!r} tracked: {'yes' if tracked else 'no'}")

        if not settings.is_active:
            self.stdout.write(
                self.style.WARNING("Telemetry is inactive: set a token and enable it.")
            )
            return

        if options.get("send"):
            unit = start_unit(kind=UNIT_CONSOLE, name="telemetry_check", settings=settings)
            unit.payload.add_log(
                {
                    "level": "INFO",
                    "message": "telemetry_check ping",
                    "context": {},
                    "timestamp": timezone.now().isoformat(),
                    "channel": "telemetry_check",
                }
            )
            if finish_unit(unit):
                self.stdout.write(self.style.SUCCESS(f"Probe payload sent ({unit.trace_id})"))
            else:
                self.stderr.write(self.style.ERROR("Probe payload could not be delivered"))
