import unittest

from sqlalchemy import func, select

from kosh.core.constants import UserRole
from kosh.core.exceptions import AuthenticationError, ConstraintViolation, InvariantViolation
from kosh.core.security import PermissionSet, hash_password, verify_password
from kosh.models.user import User
from kosh.schemas.user import UserCreate, UserRead
from kosh.services import user_service
from store_case import StoreTestCase


class PermissionSetTest(unittest.TestCase):
    def test_decode_variants(self):
        self.assertTrue(PermissionSet.decode("*").grants_all)
        self.assertEqual(PermissionSet.decode('["sales", "reports"]').names, frozenset({"sales", "reports"}))
        self.assertEqual(PermissionSet.decode("sales, stock").names, frozenset({"sales", "stock"}))
        self.assertEqual(PermissionSet.decode('"sales"').names, frozenset({"sales"}))
        self.assertEqual(PermissionSet.decode(None), PermissionSet())
        self.assertEqual(PermissionSet.decode("  "), PermissionSet())

    def test_star_inside_list_grants_all(self):
        self.assertTrue(PermissionSet.decode('["sales", "*"]').grants_all)

    def test_unsupported_value(self):
        with self.assertRaises(ValueError):
            PermissionSet.decode('{"sales": true}')

    def test_encode_is_stable(self):
        self.assertEqual(PermissionSet.of(["stock", "sales"]).encode(), '["sales", "stock"]')
        self.assertEqual(PermissionSet.all().encode(), "*")
        self.assertEqual(PermissionSet.decode(PermissionSet.of(["b", "a"]).encode()), PermissionSet.of(["a", "b"]))


class PasswordHashTest(unittest.TestCase):
    def test_verify(self):
        encoded = hash_password("s3cret", rounds=1000)
        self.assertTrue(encoded.startswith("pbkdf2_sha256$1000$"))
        self.assertTrue(verify_password("s3cret", encoded))
        self.assertFalse(verify_password("wrong", encoded))
        self.assertFalse(verify_password("s3cret", "plain-text"))


class UserServiceTest(StoreTestCase):
    def _count_users(self):
        with self.store.read_session() as db:
            return db.execute(select(func.count(User.id))).scalar_one()

    def test_default_admin_is_seeded(self):
        with self.store.read_session() as db:
            admin = user_service.authenticate(db, "admin", "admin")
            self.assertEqual(admin.role, "admin")
            self.assertTrue(admin.permissions.grants_all)
            stored = db.execute(select(User.permissions)).scalar_one()
        self.assertTrue(stored.grants_all)
        with self.store.primary.connect() as conn:
            raw = conn.exec_driver_sql("SELECT permissions FROM users").scalar()
        self.assertEqual(raw, "*")

    def test_seed_does_not_resurrect_deleted_admin(self):
        with self.store.write_session() as db:
            db.delete(db.execute(select(User)).scalars().one())

        self.store.reinitialize()

        self.assertEqual(self._count_users(), 0)

    def test_authentication_failures(self):
        with self.store.read_session() as db:
            with self.assertRaises(AuthenticationError):
                user_service.authenticate(db, "admin", "nope")
            with self.assertRaises(AuthenticationError):
                user_service.authenticate(db, "admin", "admin", role=UserRole.EMPLOYEE)
            with self.assertRaises(AuthenticationError):
                user_service.authenticate(db, "ghost", "admin")

    def test_employee_permissions(self):
        with self.store.write_session() as db:
            user = user_service.create_user(
                db,
                UserCreate(name="Ravi", username="ravi", password="pw", permissions=["sales"]),
                self.settings,
            )

        self.assertTrue(user_service.has_permission(user, "sales"))
        self.assertFalse(user_service.has_permission(user, "purchases"))
        self.assertEqual(UserRead.model_validate(user).permissions, ["sales"])

    def test_duplicate_username(self):
        with self.assertRaises(ConstraintViolation):
            with self.store.write_session() as db:
                user_service.create_user(db, UserCreate(name="Other", username="admin", password="pw"), self.settings)

    def test_last_admin_cannot_be_deactivated(self):
        with self.store.read_session() as db:
            admin_id = db.execute(select(User.id)).scalar_one()

        with self.assertRaises(InvariantViolation):
            with self.store.write_session() as db:
                user_service.deactivate_user(db, admin_id)

        with self.store.write_session() as db:
            user_service.create_user(
                db,
                UserCreate(name="Second", username="boss", password="pw", role=UserRole.ADMIN),
                self.settings,
            )
        with self.store.write_session() as db:
            self.assertFalse(user_service.deactivate_user(db, admin_id).is_active)


if __name__ == "__main__":
    unittest.main()
