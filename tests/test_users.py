import logging
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from city_events.models import FailureReason, User
from city_events.users import UserStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)


def make_user(name="Ana", email="ana@x.com", city="SP", age=30, phone="11999999999"):
    return User(name=name, email=email, phone=phone, city=city, age=age)


class TestUserStore(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "users.json"
        self.store = UserStore(self.path)

    def tearDown(self):
        self.tmp.cleanup()

    # 1) Registration
    def test_01_register_success(self):
        result = self.store.register(make_user())
        self.assertTrue(result)
        self.assertEqual(self.store.count(), 1)
        self.assertTrue(self.path.exists())

    def test_02_register_duplicate_email(self):
        """Same email in another case is still a duplicate"""
        self.assertTrue(self.store.register(make_user()))
        result = self.store.register(make_user(name="Ana Clone", email="ANA@X.COM"))
        self.assertFalse(result)
        self.assertEqual(result.reason, FailureReason.DUPLICATE)
        self.assertEqual(self.store.count(), 1)

    def test_03_register_invalid(self):
        result = self.store.register(make_user(name=""))
        self.assertEqual(result.reason, FailureReason.INVALID)
        self.assertEqual(self.store.register(None).reason, FailureReason.INVALID)
        self.assertFalse(self.store.has_users())

    # 2) Lookups
    def test_04_find_by_email(self):
        self.store.register(make_user())
        self.assertIsNotNone(self.store.find_by_email("  Ana@X.com "))
        self.assertIsNone(self.store.find_by_email(""))
        self.assertIsNone(self.store.find_by_email("   "))
        self.assertIsNone(self.store.find_by_email(None))
        self.assertIsNone(self.store.find_by_email("bob@x.com"))

    def test_05_search_by_name_and_city(self):
        self.store.register(make_user(name="Marina", email="marina@x.com", city="Rio"))
        self.store.register(make_user(name="Ana Maria", email="ana@x.com", city="SP"))
        self.store.register(make_user(name="Bruno", email="bruno@x.com", city="sp"))

        names = [u.name for u in self.store.search_by_name("MAR")]
        self.assertEqual(names, ["Ana Maria", "Marina"])
        self.assertEqual(self.store.search_by_name(""), [])

        in_sp = [u.name for u in self.store.search_by_city("Sp")]
        self.assertEqual(in_sp, ["Ana Maria", "Bruno"])
        self.assertEqual(self.store.search_by_city("  "), [])

    def test_06_list_all_sorted(self):
        self.store.register(make_user(name="Carla", email="carla@x.com"))
        self.store.register(make_user(name="Ana", email="ana@x.com"))
        self.store.register(make_user(name="Bruno", email="bruno@x.com"))
        self.assertEqual([u.name for u in self.store.list_all()], ["Ana", "Bruno", "Carla"])

    # 3) Update and removal
    def test_07_update_refreshes_session(self):
        self.store.register(make_user())
        self.store.login("ana@x.com")

        result = self.store.update(make_user(city="Campinas", age=31))
        self.assertTrue(result)
        self.assertEqual(self.store.find_by_email("ana@x.com").city, "Campinas")
        self.assertEqual(self.store.current_user.city, "Campinas")
        self.assertEqual(self.store.current_user.age, 31)

    def test_08_update_unknown_or_invalid(self):
        self.assertEqual(self.store.update(make_user()).reason, FailureReason.NOT_FOUND)
        self.store.register(make_user())
        self.assertEqual(self.store.update(make_user(age=0)).reason, FailureReason.INVALID)

    def test_09_remove_clears_session(self):
        self.store.register(make_user())
        self.store.login("ana@x.com")
        self.assertTrue(self.store.remove("ANA@x.com"))
        self.assertFalse(self.store.is_logged_in())
        self.assertEqual(self.store.count(), 0)
        self.assertEqual(self.store.remove("ana@x.com").reason, FailureReason.NOT_FOUND)

    # 4) Session
    def test_10_login_logout(self):
        self.store.register(make_user())
        self.assertEqual(self.store.login("nobody@x.com").reason, FailureReason.NOT_FOUND)
        self.assertFalse(self.store.is_logged_in())

        self.assertTrue(self.store.login("ana@x.com"))
        self.assertEqual(self.store.current_user.name, "Ana")

        self.store.logout()
        self.assertIsNone(self.store.current_user)
        self.store.logout()  # no session, nothing happens

    def test_11_session_is_detached_copy(self):
        self.store.register(make_user())
        self.store.login("ana@x.com")
        self.store.find_by_email("ana@x.com").city = "Santos"
        self.assertEqual(self.store.current_user.city, "SP")

    # 5) Validators
    def test_12_validators(self):
        self.assertTrue(UserStore.is_valid_email("ana.souza+events@mail.com.br"))
        self.assertFalse(UserStore.is_valid_email("ana@mail"))
        self.assertFalse(UserStore.is_valid_email("ana mail.com"))
        self.assertFalse(UserStore.is_valid_email(""))

        self.assertTrue(UserStore.is_valid_phone("(11) 99999-9999"))
        self.assertTrue(UserStore.is_valid_phone("1133334444"))
        self.assertFalse(UserStore.is_valid_phone("99999-999"))
        self.assertFalse(UserStore.is_valid_phone("+55 11 99999-9999"))

        self.assertTrue(UserStore.is_valid_age(13))
        self.assertTrue(UserStore.is_valid_age(120))
        self.assertFalse(UserStore.is_valid_age(12))
        self.assertFalse(UserStore.is_valid_age(121))

    # 6) Statistics
    def test_13_stats(self):
        self.store.register(make_user(name="A", email="a@x.com", city="SP", age=25))
        self.store.register(make_user(name="B", email="b@x.com", city="SP", age=26))
        self.store.register(make_user(name="C", email="c@x.com", city="RJ", age=60))
        self.store.register(make_user(name="D", email="d@x.com", city="RJ", age=61))
        self.store.register(make_user(name="E", email="e@x.com", city="BH", age=18))

        stats = self.store.stats()
        self.assertEqual(stats.total, 5)
        self.assertEqual(stats.by_city, {"SP": 2, "RJ": 2, "BH": 1})
        self.assertEqual(stats.by_age_band, {"up_to_25": 2, "26_to_60": 2, "over_60": 1})
        self.assertIn("Total users: 5", stats.render())

    # 7) Persistence
    def test_14_reload_from_disk(self):
        self.store.register(make_user())
        self.store.register(make_user(name="Bruno", email="bruno@x.com", city="RJ"))

        reloaded = UserStore(self.path)
        self.assertEqual(reloaded.list_all(), self.store.list_all())
        self.assertEqual(reloaded.find_by_email("bruno@x.com").city, "RJ")

    def test_15_storage_failure_keeps_memory(self):
        """A failed write leaves the collection as it was"""
        self.store.register(make_user())
        with mock.patch.object(self.store._file, "save", return_value=False):
            result = self.store.register(make_user(name="Bruno", email="bruno@x.com"))
            self.assertEqual(result.reason, FailureReason.STORAGE_ERROR)
            self.assertEqual(self.store.remove("ana@x.com").reason, FailureReason.STORAGE_ERROR)
        self.assertEqual(self.store.count(), 1)
        self.assertIsNotNone(self.store.find_by_email("ana@x.com"))

    def test_16_clear_all(self):
        self.store.register(make_user())
        self.store.login("ana@x.com")
        self.assertTrue(self.store.clear_all())
        self.assertFalse(self.store.has_users())
        self.assertFalse(self.store.is_logged_in())
        self.assertEqual(UserStore(self.path).count(), 0)


if __name__ == '__main__':
    unittest.main()
