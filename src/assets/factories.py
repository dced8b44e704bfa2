"""Factory Boy factories for AssetDesk test data generation."""

import factory
from factory.django import DjangoModelFactory


class DepartmentFactory(DjangoModelFactory):
    """Factory for Department model."""

    class Meta:
        model = "assets.Department"
        django_get_or_create = ("name",)

    name = factory.Sequence(lambda n: f"Department {n}")
    description = factory.Faker("sentence")


class UserFactory(DjangoModelFactory):
    """Factory for CustomUser model."""

    class Meta:
        model = "accounts.CustomUser"
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")
    display_name = factory.Faker("name")
    employee_id = factory.Sequence(lambda n: f"EMP{n:05d}")
    role = "user"
    department = factory.SubFactory(DepartmentFactory)
    is_active = True

    @factory.post_generation
    def password(self, create, extracted, **kwargs):
        pwd = extracted or "testpass123!"
        self.set_password(pwd)
        if create:
            self.save(update_fields=["password"])


class AssetFactory(DjangoModelFactory):
    """Factory for Asset model.

    Leaves asset_tag blank unless given; Asset.save() generates one.
    """

    class Meta:
        model = "assets.Asset"

    name = factory.Sequence(lambda n: f"Laptop {n}")
    category = "laptop"
    brand = "Lenovo"
    model = "T14"
    serial_number = factory.Sequence(lambda n: f"SN{n:06d}")
    status = "available"
    department = factory.SubFactory(DepartmentFactory)
    location = "Head office"
    purchase_cost = "1200.00"


class AllocationFactory(DjangoModelFactory):
    """Factory for an active Allocation.

    Writes the row directly; the asset status is not synced. Use the
    allocation service when a test needs the full transition.
    """

    class Meta:
        model = "assets.Allocation"

    asset = factory.SubFactory(AssetFactory, status="assigned")
    employee = factory.SubFactory(UserFactory)
    employee_name = factory.LazyAttribute(
        lambda o: o.employee.get_display_name()
    )
    department_name = factory.LazyAttribute(
        lambda o: o.employee.department.name if o.employee.department else ""
    )
    status = "active"
    condition = "good"


class AssetRequestFactory(DjangoModelFactory):
    """Factory for a pending AssetRequest."""

    class Meta:
        model = "assets.AssetRequest"

    requester = factory.SubFactory(UserFactory)
    category = "laptop"
    quantity = 1
    specification = "16GB RAM, 512GB SSD, 14 inch screen"
    reason = "Replacement for a failing machine"
    department = factory.LazyAttribute(lambda o: o.requester.department)
    location = "Head office"
    request_type = "regular"
    status = "pending"


class TicketFactory(DjangoModelFactory):
    """Factory for an open Ticket on an asset the reporter holds."""

    class Meta:
        model = "assets.Ticket"

    reporter = factory.SubFactory(UserFactory)
    asset = factory.SubFactory(AssetFactory, status="assigned")
    asset_name = factory.LazyAttribute(lambda o: o.asset.name)
    title = "Screen flickers"
    description = "The display flickers after ten minutes of use."
    location = "Head office"
    department = factory.LazyAttribute(lambda o: o.reporter.department)
    priority = "medium"
    issue_category = "hardware"
    status = "open"


class MaintenanceRecordFactory(DjangoModelFactory):
    """Factory for an open MaintenanceRecord."""

    class Meta:
        model = "assets.MaintenanceRecord"

    asset = factory.SubFactory(AssetFactory, status="under_maintenance")
    maintenance_type = "repair"
    description = "Replace keyboard"
    started_by = factory.SubFactory(UserFactory, role="admin")
