import re
import unittest

from cellml_flattener.naming import fallback_name, unique_name, unique_set_name


class UniqueNameTests(unittest.TestCase):
    def test_free_name_is_kept(self) -> None:
        used = set()
        self.assertEqual(unique_name("foo", used), "foo")
        self.assertIn("foo", used)

    def test_least_free_suffix(self) -> None:
        self.assertEqual(unique_name("foo", {"foo"}), "foo_1")
        self.assertEqual(unique_name("foo", {"foo", "foo_1"}), "foo_2")
        self.assertEqual(unique_name("foo", {"foo", "foo_2"}), "foo_1")

    def test_result_is_recorded(self) -> None:
        used = {"foo"}
        first = unique_name("foo", used)
        second = unique_name("foo", used)
        self.assertNotEqual(first, second)
        self.assertEqual(used, {"foo", "foo_1", "foo_2"})


def test_fallback_names_strictly_increase():
    a = fallback_name("ms")
    b = fallback_name("ms")
    assert re.fullmatch(r"ms_[0-9a-f]{5}", a)
    assert int(b.rsplit("_", 1)[1], 16) > int(a.rsplit("_", 1)[1], 16)


def test_unique_set_name_keeps_free_name():
    assert unique_set_name("ms", ["second"]) == "ms"
    taken = unique_set_name("ms", ["ms"])
    assert taken != "ms" and taken.startswith("ms_")


if __name__ == "__main__":
    unittest.main()
