from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management import CommandError, call_command
from django.test import RequestFactory, TestCase
from rest_framework.authtoken.models import Token

from core import errors
from core.access import ROLE_BAKER, ROLE_OWNER, ROLE_VIEWER, can_complete_sheets, can_manage_catalog, primary_role
from core.formatting import format_currency, format_quantity
from core.models import ActivityLog, Bakery, UserProfile
from core.serializers import validate_create_bakery
from core.audit import log_event
from core.services import create_bakery, delete_bakery, get_bakery, update_bakery, visible_bakeries
from core.tenancy import TenantContext, context_for_request, ensure_same_bakery, parse_id


class FormatQuantityTests(TestCase):
    def test_whole_numbers_have_no_decimal_point(self):
        self.assertEqual(format_quantity(5), "5")
        self.assertEqual(format_quantity(Decimal("5.000")), "5")
        self.assertEqual(format_quantity(0), "0")

    def test_trailing_zeros_are_stripped(self):
        self.assertEqual(format_quantity(Decimal("5.250")), "5.25")
        self.assertEqual(format_quantity("0.5"), "0.5")

    def test_rounds_to_three_decimals(self):
        self.assertEqual(format_quantity(Decimal("5.1234")), "5.123")
        self.assertEqual(format_quantity(Decimal("5.1235")), "5.124")
        self.assertEqual(format_quantity(Decimal("1.9999")), "2")

    def test_negative_values(self):
        self.assertEqual(format_quantity(Decimal("-2.50")), "-2.5")
        self.assertEqual(format_quantity(-3), "-3")

    def test_tiny_values_round_to_zero_without_sign(self):
        self.assertEqual(format_quantity(Decimal("-0.0001")), "0")
        self.assertEqual(format_quantity(Decimal("0.0004")), "0")

    def test_float_input_uses_its_repr(self):
        self.assertEqual(format_quantity(0.1 + 0.2), "0.3")

    def test_rejects_non_numbers(self):
        with self.assertRaises(ValueError):
            format_quantity("abc")
        with self.assertRaises(ValueError):
            format_quantity(Decimal("NaN"))

    def test_currency(self):
        self.assertEqual(format_currency(Decimal("3.456")), "$3.46")
        self.assertEqual(format_currency(0), "$0.00")


class ValidationLayerTests(TestCase):
    def test_create_bakery_normalizes_name(self):
        cleaned = validate_create_bakery({"name": "  Flour   Power  "})
        self.assertEqual(cleaned["name"], "Flour Power")
        self.assertEqual(cleaned["email"], "")

    def test_create_bakery_reports_every_field(self):
        with self.assertRaises(errors.ValidationError) as ctx:
            validate_create_bakery({"name": "", "email": "nope", "website": "nope"})
        self.assertEqual(ctx.exception.errors["name"], ["Name is required."])
        self.assertEqual(ctx.exception.errors["email"], ["Invalid email address."])
        self.assertEqual(ctx.exception.errors["website"], ["Invalid URL."])

    def test_name_length_limit(self):
        with self.assertRaises(errors.ValidationError) as ctx:
            validate_create_bakery({"name": "x" * 101})
        self.assertEqual(ctx.exception.errors["name"], ["Name must be 100 characters or less."])

    def test_parse_id(self):
        self.assertEqual(parse_id("12"), 12)
        self.assertEqual(parse_id(" 7 "), 7)
        self.assertIsNone(parse_id("0"))
        self.assertIsNone(parse_id("-3"))
        self.assertIsNone(parse_id("abc"))
        self.assertIsNone(parse_id(None))


class TenancyTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.bakery = Bakery.objects.create(name="North")
        self.other = Bakery.objects.create(name="South")
        self.member = user_model.objects.create_user(username="member", password="test12345")
        UserProfile.objects.create(user=self.member, bakery=self.bakery)
        self.member.groups.add(Group.objects.get_or_create(name=ROLE_BAKER)[0])
        self.admin = user_model.objects.create_superuser(
            username="platform", email="platform@example.com", password="test12345"
        )
        self.factory = RequestFactory()

    def _request(self, user, header=None):
        request = self.factory.get("/", HTTP_X_BAKERY_ID=header) if header else self.factory.get("/")
        request.user = user
        request.session = {}
        return request

    def test_member_always_acts_on_profile_bakery(self):
        ctx = context_for_request(self._request(self.member, header=str(self.other.id)))
        self.assertEqual(ctx.bakery, self.bakery)

    def test_platform_admin_selects_bakery_by_header(self):
        ctx = context_for_request(self._request(self.admin, header=str(self.other.id)))
        self.assertEqual(ctx.bakery, self.other)

    def test_platform_admin_without_selection_is_not_found(self):
        with self.assertRaises(errors.NotFoundError):
            context_for_request(self._request(self.admin))

    def test_ensure_same_bakery(self):
        ctx = TenantContext(bakery=self.bakery, user=self.member)
        ensure_same_bakery(ctx, str(self.bakery.id))
        with self.assertRaises(errors.NotFoundError):
            ensure_same_bakery(ctx, self.other.id)

    def test_roles(self):
        self.assertEqual(primary_role(self.member), ROLE_BAKER)
        self.assertTrue(can_complete_sheets(self.member))
        self.assertFalse(can_manage_catalog(self.member))
        self.assertTrue(can_manage_catalog(self.admin))


class BakeryServiceTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.admin = user_model.objects.create_superuser(
            username="platform", email="platform@example.com", password="test12345"
        )
        self.owner = user_model.objects.create_user(username="owner", password="test12345")
        self.viewer = user_model.objects.create_user(username="viewer", password="test12345")
        self.bakery = Bakery.objects.create(name="Corner Bakery")
        for user, role in ((self.owner, ROLE_OWNER), (self.viewer, ROLE_VIEWER)):
            UserProfile.objects.create(user=user, bakery=self.bakery)
            user.groups.add(Group.objects.get_or_create(name=role)[0])

    def test_platform_admin_creates_bakery_and_logs_it(self):
        bakery = create_bakery(self.admin, {"name": "Rye & Co", "email": "hi@rye.example"})
        self.assertEqual(bakery.name, "Rye & Co")
        log = ActivityLog.objects.get(entity_type="bakery", entity_id=str(bakery.id))
        self.assertEqual(log.action, ActivityLog.ACTION_CREATE)
        self.assertEqual(log.user, self.admin)

    def test_members_cannot_create_bakeries(self):
        with self.assertRaises(PermissionError):
            create_bakery(self.owner, {"name": "Nope"})
        self.assertFalse(Bakery.objects.filter(name="Nope").exists())

    def test_owner_updates_own_bakery(self):
        bakery = update_bakery(self.owner, self.bakery.id, {"phone": "555-0100"})
        self.assertEqual(bakery.phone, "555-0100")
        log = ActivityLog.objects.get(entity_type="bakery", action=ActivityLog.ACTION_UPDATE)
        self.assertEqual(log.metadata["updated_fields"], ["phone"])

    def test_viewer_cannot_update_bakery(self):
        with self.assertRaises(PermissionError):
            update_bakery(self.viewer, self.bakery.id, {"phone": "555-0100"})

    def test_members_only_see_their_bakery(self):
        other = Bakery.objects.create(name="Elsewhere")
        self.assertEqual(list(visible_bakeries(self.owner)), [self.bakery])
        with self.assertRaises(errors.NotFoundError):
            get_bakery(self.owner, other.id)
        self.assertEqual(get_bakery(self.admin, other.id), other)

    def test_platform_admin_deletes_empty_bakery(self):
        empty = create_bakery(self.admin, {"name": "Pop-up Stand"})
        delete_bakery(self.admin, empty.id)
        self.assertFalse(Bakery.objects.filter(pk=empty.pk).exists())
        log = ActivityLog.objects.get(entity_type="bakery", action=ActivityLog.ACTION_DELETE)
        self.assertEqual(log.entity_id, str(empty.id))
        self.assertIsNone(log.bakery)

    def test_bakery_with_members_cannot_be_deleted(self):
        with self.assertRaises(errors.StateConflictError) as raised:
            delete_bakery(self.admin, self.bakery.id)
        self.assertIn("2 active user", str(raised.exception))
        self.assertTrue(Bakery.objects.filter(pk=self.bakery.pk).exists())

    def test_members_cannot_delete_bakeries(self):
        with self.assertRaises(PermissionError):
            delete_bakery(self.owner, self.bakery.id)
        with self.assertRaises(errors.NotFoundError):
            delete_bakery(self.admin, 999999)


class AuditLogTests(TestCase):
    def test_log_event_writes_row_and_log_line(self):
        bakery = Bakery.objects.create(name="Corner Bakery")
        with self.assertLogs("core.audit", level="INFO") as logs:
            entry = log_event(None, ActivityLog.ACTION_CREATE, "vendor", 7, bakery=bakery, entity_name="Mill")
        self.assertEqual(entry.entity_id, "7")
        self.assertIsNone(entry.user)
        self.assertEqual(logs.output, [f"INFO:core.audit:CREATE vendor 7 (bakery {bakery.id})"])


class ManagementCommandTests(TestCase):
    def test_bootstrap_roles_creates_groups(self):
        call_command("bootstrap_roles", stdout=StringIO())
        names = set(Group.objects.values_list("name", flat=True))
        self.assertTrue({ROLE_OWNER, ROLE_BAKER, ROLE_VIEWER}.issubset(names))
        viewer = Group.objects.get(name=ROLE_VIEWER)
        self.assertTrue(viewer.permissions.filter(codename="view_bakesheet").exists())
        self.assertFalse(viewer.permissions.filter(codename="add_bakesheet").exists())

    def test_issue_api_token_and_rotate(self):
        user = get_user_model().objects.create_user(username="owner", password="test12345")
        UserProfile.objects.create(user=user, bakery=Bakery.objects.create(name="North"))
        out = StringIO()
        call_command("issue_api_token", "--username", "owner", stdout=out)
        first = Token.objects.get(user=user).key
        self.assertIn(f"token={first}", out.getvalue())
        self.assertIn("action=created", out.getvalue())

        call_command("issue_api_token", "--username", "owner", "--rotate", stdout=StringIO())
        self.assertNotEqual(Token.objects.get(user=user).key, first)

    def test_issue_api_token_requires_membership(self):
        get_user_model().objects.create_user(username="drifter", password="test12345")
        with self.assertRaises(CommandError):
            call_command("issue_api_token", "--username", "drifter", stdout=StringIO())
        with self.assertRaises(CommandError):
            call_command("issue_api_token", "--username", "ghost", stdout=StringIO())
