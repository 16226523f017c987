"""
manage.py set_image_tag <env> <sha>
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Write ``global.imageTag`` for one environment.  Used by the build pipeline
after an image is pushed; the pipeline commits the resulting change.
"""
from django.core.management.base import BaseCommand, CommandError

from apps.values_store import services
from common.exceptions import AppError


class Command(BaseCommand):
    help = "Set global.imageTag in environments/<env>/values.yaml from a git SHA."

    def add_arguments(self, parser):
        parser.add_argument("environment")
        parser.add_argument("sha", help="Short or full git commit SHA.")

    def handle(self, *args, **options):
        try:
            update = services.set_image_tag(options["environment"], options["sha"])
        except AppError as exc:
            raise CommandError(exc.detail) from exc

        if update.changed:
            self.stdout.write(
                f"{update.environment}: {update.previous or '<unset>'} -> {update.current}"
            )
        else:
            self.stdout.write(f"{update.environment}: already at {update.current}")
