"""
Tests for laserdesk.services.status

Covers: overall status derivation from the two side statuses.
"""
import unittest

from laserdesk.models.order import Order, OverallStatus, SideStatus
from laserdesk.services.status import aggregate_status, refresh_overall_status


class TestAggregateStatus(unittest.TestCase):

    def test_front_printed_without_retro_is_printed(self):
        self.assertEqual(aggregate_status(SideStatus.PRINTED, SideStatus.NOT_REQUIRED), OverallStatus.PRINTED)

    def test_both_printed_is_printed(self):
        self.assertEqual(aggregate_status(SideStatus.PRINTED, SideStatus.PRINTED), OverallStatus.PRINTED)

    def test_retro_still_pending_keeps_order_pending(self):
        self.assertEqual(aggregate_status(SideStatus.PRINTED, SideStatus.PENDING), OverallStatus.PENDING)

    def test_error_wins_over_processing(self):
        self.assertEqual(aggregate_status(SideStatus.PROCESSING, SideStatus.ERROR), OverallStatus.ERROR)
        self.assertEqual(aggregate_status(SideStatus.ERROR, SideStatus.PROCESSING), OverallStatus.ERROR)

    def test_printed_front_with_failed_retro_is_error(self):
        self.assertEqual(aggregate_status(SideStatus.PRINTED, SideStatus.ERROR), OverallStatus.ERROR)

    def test_processing(self):
        self.assertEqual(aggregate_status(SideStatus.PENDING, SideStatus.PROCESSING), OverallStatus.PROCESSING)
        self.assertEqual(aggregate_status(SideStatus.PROCESSING, SideStatus.NOT_REQUIRED), OverallStatus.PROCESSING)

    def test_pending(self):
        self.assertEqual(aggregate_status(SideStatus.PENDING, SideStatus.NOT_REQUIRED), OverallStatus.PENDING)
        self.assertEqual(aggregate_status(SideStatus.PENDING, SideStatus.PENDING), OverallStatus.PENDING)

    def test_accepts_raw_values(self):
        self.assertEqual(aggregate_status("printed", "not_required"), OverallStatus.PRINTED)

    def test_front_not_required_is_rejected(self):
        with self.assertRaises(ValueError):
            aggregate_status(SideStatus.NOT_REQUIRED, SideStatus.PENDING)


class TestRefreshOverallStatus(unittest.TestCase):

    def test_sets_status_on_order(self):
        order = Order(
            order_id="A1",
            raw_payload="{}",
            front_status=SideStatus.PRINTED,
            retro_status=SideStatus.PENDING,
            overall_status=OverallStatus.PRINTED,
        )
        self.assertEqual(refresh_overall_status(order), OverallStatus.PENDING)
        self.assertEqual(order.overall_status, OverallStatus.PENDING)


if __name__ == '__main__':
    unittest.main()
