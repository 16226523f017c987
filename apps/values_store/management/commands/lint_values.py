"""
manage.py lint_values
~~~~~~~~~~~~~~~~~~~~~
Run every structural check over the values tree.  Intended as the CI gate on
pull requests: exits with status 1 when any document is invalid.
"""
import json
from dataclasses import asdict

from django.core.management.base import BaseCommand, CommandError

from apps.values_store import services


class Command(BaseCommand):
    help = "Lint base/values.yaml and every environments/<env>/values.yaml."

    def add_arguments(self, parser):
        parser.add_argument(
            "--format",
            choices=["text", "json"],
            default="text",
            help="Report format (default: text).",
        )

    def handle(self, *args, **options):
        result = services.lint_repository()

        if options["format"] == "json":
            self.stdout.write(json.dumps(asdict(result), indent=2, sort_keys=True))
        else:
            for err in result.errors:
                location = err["document"]
                if err["field"]:
                    location = f"{location}: {err['field']}"
                self.stdout.write(f"{location}: [{err['code']}] {err['message']}")
            if result.valid:
                self.stdout.write(
                    self.style.SUCCESS(f"{result.documents_checked} document(s) OK")
                )

        if not result.valid:
            raise CommandError(
                f"{len(result.errors)} problem(s) in "
                f"{result.documents_checked} document(s)",
                returncode=1,
            )
