from collections import Counter

from django.core.management.base import BaseCommand

from enrollments.services.factory import build_confirmation_service


class Command(BaseCommand):
    help = "Reconciles Pending enrollments older than ENROLLMENT_PENDING_TTL with their vendor"

    def handle(self, *args, **options):
        results = build_confirmation_service().expire_stale_enrollments()

        outcomes = Counter(
            result.error.value if result.error else result.state.value for result in results
        )
        self.stdout.write(f"Reconciled {len(results)} pending enrollments")
        for outcome, count in sorted(outcomes.items()):
            self.stdout.write(f"  {outcome}: {count}")

        failures = sum(1 for result in results if not result.ok)
        if failures:
            self.stdout.write(
                self.style.WARNING(f"{failures} enrollments could not be reconciled; see logs")
            )
        else:
            self.stdout.write(self.style.SUCCESS("Done"))
