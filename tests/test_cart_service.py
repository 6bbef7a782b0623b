import threading
import unittest
from decimal import Decimal

from storefront.errors import InvalidArgument, NotFound
from storefront.services.cart_service import CartService
from storefront.services.cart_store import CartStore
from tests.helpers import memory_session_factory


class TestCartService(unittest.TestCase):
    def setUp(self):
        self.carts = CartService(CartStore(memory_session_factory()), max_quantity=1000)

    def test_repeat_add_merges_into_one_line(self):
        self.carts.add_item("c1", "A", "Apple", "10", 2)
        cart = self.carts.add_item("c1", "A", "Apple (renamed)", "99", 3)

        self.assertEqual(len(cart.lines), 1)
        line = cart.get("A")
        self.assertEqual(line.quantity, 5)
        # First add wins for name and price
        self.assertEqual(line.name, "Apple")
        self.assertEqual(line.unit_price, Decimal("10.00"))

    def test_lines_keep_insertion_order(self):
        self.carts.add_item("c1", "B", "Banana", "5", 1)
        self.carts.add_item("c1", "A", "Apple", "10", 1)
        self.carts.add_item("c1", "B", "Banana", "5", 1)

        cart = self.carts.get_cart("c1")
        self.assertEqual([line.item_id for line in cart.lines], ["B", "A"])

    def test_total_is_sum_of_price_times_quantity(self):
        self.carts.add_item("c1", "A", "Apple", "10", 2)
        cart = self.carts.add_item("c1", "B", "Banana", "5", 1)
        self.assertEqual(cart.total, Decimal("25.00"))

    def test_carts_are_isolated(self):
        self.carts.add_item("c1", "A", "Apple", "10", 2)
        self.assertTrue(self.carts.get_cart("c2").is_empty)

    def test_add_rejects_bad_input(self):
        for quantity in (0, -1, 1.5, "2", True):
            with self.assertRaises(InvalidArgument):
                self.carts.add_item("c1", "A", "Apple", "10", quantity)
        for price in ("-1", "abc", "NaN", "Infinity", None):
            with self.assertRaises(InvalidArgument):
                self.carts.add_item("c1", "A", "Apple", price, 1)
        with self.assertRaises(InvalidArgument):
            self.carts.add_item("c1", "", "Apple", "10", 1)
        with self.assertRaises(InvalidArgument):
            self.carts.add_item("c1", "A", "  ", "10", 1)
        self.assertTrue(self.carts.get_cart("c1").is_empty)

    def test_accumulated_quantity_cannot_exceed_limit(self):
        self.carts.add_item("c1", "A", "Apple", "10", 600)
        with self.assertRaises(InvalidArgument):
            self.carts.add_item("c1", "A", "Apple", "10", 401)
        self.assertEqual(self.carts.get_cart("c1").get("A").quantity, 600)

    def test_update_missing_item_is_not_found(self):
        with self.assertRaises(NotFound):
            self.carts.update_quantity("c1", "ghost", 3)
        self.carts.add_item("c1", "A", "Apple", "10", 1)
        with self.assertRaises(NotFound):
            self.carts.update_quantity("c1", "ghost", 3)

    def test_update_to_zero_is_invalid_and_leaves_line(self):
        self.carts.add_item("c1", "A", "Apple", "10", 2)
        with self.assertRaises(InvalidArgument):
            self.carts.update_quantity("c1", "A", 0)
        self.assertEqual(self.carts.get_cart("c1").get("A").quantity, 2)

    def test_update_replaces_quantity(self):
        self.carts.add_item("c1", "A", "Apple", "10", 2)
        cart = self.carts.update_quantity("c1", "A", 7)
        self.assertEqual(cart.get("A").quantity, 7)
        self.assertEqual(cart.total, Decimal("70.00"))

    def test_remove_missing_item_is_noop(self):
        self.carts.add_item("c1", "A", "Apple", "10", 2)
        cart = self.carts.remove_item("c1", "ghost")
        self.assertEqual([line.item_id for line in cart.lines], ["A"])

    def test_remove_deletes_line(self):
        self.carts.add_item("c1", "A", "Apple", "10", 2)
        self.carts.add_item("c1", "B", "Banana", "5", 1)
        cart = self.carts.remove_item("c1", "A")
        self.assertIsNone(cart.get("A"))
        self.assertEqual(cart.total, Decimal("5.00"))

    def test_get_cart_does_not_mutate(self):
        self.carts.add_item("c1", "A", "Apple", "10", 2)
        first = self.carts.get_cart("c1")
        for _ in range(3):
            self.carts.get_cart("c1")
        self.assertEqual(self.carts.get_cart("c1"), first)
        self.assertEqual(first.total_quantity, 2)

    def test_clear_removes_every_line(self):
        self.carts.add_item("c1", "A", "Apple", "10", 2)
        self.carts.add_item("c1", "B", "Banana", "5", 1)
        self.carts.add_item("c2", "A", "Apple", "10", 1)

        self.assertEqual(self.carts.clear("c1"), 2)
        self.assertTrue(self.carts.get_cart("c1").is_empty)
        self.assertEqual(self.carts.get_cart("c2").total_quantity, 1)

    def test_concurrent_adds_are_not_lost(self):
        threads_count, adds_per_thread = 8, 25

        def worker():
            for _ in range(adds_per_thread):
                self.carts.add_item("c1", "A", "Apple", "1", 1)

        threads = [threading.Thread(target=worker) for _ in range(threads_count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        cart = self.carts.get_cart("c1")
        self.assertEqual(len(cart.lines), 1)
        self.assertEqual(cart.get("A").quantity, threads_count * adds_per_thread)


if __name__ == "__main__":
    unittest.main()
