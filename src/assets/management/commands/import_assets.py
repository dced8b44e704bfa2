"""Import assets from a spreadsheet."""

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from assets.services.bulk import import_assets, read_rows
from assets.services.permissions import ActorContext


class Command(BaseCommand):
    help = "Import assets from an .xlsx file, one asset per row"

    def add_arguments(self, parser):
        parser.add_argument("path", help="Path to the .xlsx file.")
        parser.add_argument(
            "--actor",
            required=True,
            help="Username of the admin performing the import.",
        )

    def handle(self, *args, **options):
        User = get_user_model()
        try:
            user = User.objects.get(username=options["actor"])
        except User.DoesNotExist:
            raise CommandError(f"No user named '{options['actor']}'.")

        try:
            with open(options["path"], "rb") as f:
                rows = read_rows(f)
        except OSError as e:
            raise CommandError(f"Cannot read {options['path']}: {e}")

        report = import_assets(ActorContext.from_user(user), rows)
        for entry in report:
            if entry["ok"]:
                self.stdout.write(
                    f"Row {entry['row']}: created {entry['identifier']}"
                )
                continue
            for field, messages in entry["errors"].items():
                for message in messages:
                    self.stdout.write(
                        self.style.ERROR(
                            f"Row {entry['row']}: {field}: {message}"
                        )
                    )

        created = sum(1 for entry in report if entry["ok"])
        self.stdout.write(
            self.style.SUCCESS(
                f"{created} of {len(report)} row(s) imported."
            )
        )
