"""
manage.py render_values <env> [--chart-values PATH]
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Print the effective values of one environment as YAML.
"""
import yaml
from django.core.management.base import BaseCommand, CommandError

from apps.values_store import services
from common.exceptions import AppError


class Command(BaseCommand):
    help = "Print base values layered with one environment's overrides."

    def add_arguments(self, parser):
        parser.add_argument("environment")
        parser.add_argument(
            "--chart-values",
            metavar="PATH",
            help="Chart values.yaml to use as the lowest-precedence layer.",
        )

    def handle(self, *args, **options):
        try:
            chart_defaults = None
            if options["chart_values"]:
                chart_defaults = services.load_chart_defaults(options["chart_values"])
            values = services.get_effective_values(
                options["environment"], chart_defaults=chart_defaults
            )
        except AppError as exc:
            raise CommandError(exc.detail) from exc

        self.stdout.write(
            yaml.safe_dump(values, sort_keys=False, default_flow_style=False),
            ending="",
        )
