"""Unit tests for reimbursement calculations over stored snapshots"""
import pytest

from analysis.jobs.reimbursement import (
    ReimbursementCalculator,
    calculate_fee_reimbursement,
    calculate_shipment_discrepancy,
)
from tests.fakes import FakeSnapshots

LISTINGS = [
    {"seller-sku": "SKU-1", "asin1": "B1", "price": "$20.00", "status": "Active"},
    {"seller-sku": "SKU-2", "asin1": "B2", "price": "10.00", "status": "Active"},
]
FEES = [
    {"fnsku": "X1", "asin": "B1", "estimated-fee-total": "5.00", "expected-fulfillment-fee-per-unit": "3.50"},
    {"fnsku": "X2", "asin": "B2", "estimated-fee-total": "2.00", "expected-fulfillment-fee-per-unit": "2.00"},
]


class TestShipmentDiscrepancy:

    def test_missing_units_are_valued(self):
        snapshots = FakeSnapshots({
            "merchantListings": LISTINGS,
            "shipment": {"shipments": [{
                "ShipmentId": "FBA1",
                "ShipmentName": "October",
                "itemDetails": [
                    {"SellerSKU": "SKU-1", "FulfillmentNetworkSKU": "X1", "QuantityShipped": 10, "QuantityReceived": 7},
                    {"SellerSKU": "SKU-2", "FulfillmentNetworkSKU": "X2", "QuantityShipped": 5, "QuantityReceived": 5},
                ],
            }]},
        })
        result = ReimbursementCalculator(snapshots).shipment_discrepancy("u1", "US", "NA")

        assert result["success"]
        assert result["totalDiscrepancy"] == 3
        assert result["totalReimbursement"] == 60.0
        assert [row["sellerSKU"] for row in result["data"]] == ["SKU-1"]

    def test_no_shipments(self):
        result = ReimbursementCalculator(FakeSnapshots()).shipment_discrepancy("u1", "US", "NA")
        assert result["success"]
        assert result["data"] == []
        assert result["totalDiscrepancy"] == 0


class TestLostInventory:

    def test_lost_minus_found_minus_reimbursed(self):
        snapshots = FakeSnapshots({
            "merchantListings": LISTINGS,
            "fbaEstimatedFeesData": FEES,
            "ledgerSummaryViewData": [{"ASIN": "B1", "FNSKU": "X1", "Lost": "-5", "Found": "1"}],
            "fbaReimbursementsData": [{"asin": "B1", "quantity-reimbursed-total": "1"}],
        })
        result = ReimbursementCalculator(snapshots).lost_inventory("u1", "US", "NA")

        assert result["totalLostUnits"] == 3
        assert result["totalExpectedAmount"] == 45.0
        assert result["data"][0]["reimbursementPerUnit"] == 15.0

    def test_no_ledger(self):
        result = ReimbursementCalculator(FakeSnapshots()).lost_inventory("u1", "US", "NA")
        assert result["data"] == []


class TestLedgerAdjustments:

    def test_damaged_only_counts_damage_reasons(self):
        snapshots = FakeSnapshots({
            "merchantListings": LISTINGS,
            "ledgerDetailViewData": [
                {"Reference ID": "R1", "ASIN": "B1", "FNSKU": "X1", "Reason": "E", "Unreconciled Quantity": "-2"},
                {"Reference ID": "R1", "ASIN": "B1", "FNSKU": "X1", "Reason": "E", "Unreconciled Quantity": "-2"},
                {"Reference ID": "R2", "ASIN": "B2", "FNSKU": "X2", "Reason": "M", "Unreconciled Quantity": "-4"},
            ],
        })
        result = ReimbursementCalculator(snapshots).damaged_inventory("u1", "US", "NA")

        assert result["totalDamagedUnits"] == 2
        assert result["totalExpectedAmount"] == 40.0
        assert result["data"][0]["referenceId"] == "R1"

    def test_disposed_requires_disposition(self):
        snapshots = FakeSnapshots({
            "merchantListings": LISTINGS,
            "ledgerDetailViewData": [
                {"Reference ID": "R3", "ASIN": "B2", "Reason": "D", "Disposition": "SELLABLE", "Quantity": "-1"},
                {"Reference ID": "R4", "ASIN": "B2", "Reason": "D", "Disposition": "CUSTOMER_DAMAGED", "Quantity": "-3"},
            ],
        })
        result = ReimbursementCalculator(snapshots).disposed_inventory("u1", "US", "NA")

        assert result["totalDisposedUnits"] == 1
        assert result["totalExpectedAmount"] == 10.0


class TestFeeOvercharges:

    def test_fee_difference_times_units(self):
        snapshots = FakeSnapshots({
            "fbaEstimatedFeesData": FEES,
            "mcpEconomicsData": {"asinBreakdown": [
                {"parentAsin": "B1", "unitsOrdered": 3},
                {"parentAsin": "B1", "unitsOrdered": 1},
                {"parentAsin": "B2", "unitsOrdered": 9},
            ]},
        })
        result = ReimbursementCalculator(snapshots).fee_overcharges("u1", "US", "NA")

        assert [row["asin"] for row in result["data"]] == ["B1"]
        assert result["data"][0]["unitsSold"] == 4
        assert result["totalExpectedAmount"] == 6.0

    def test_without_sales_data(self):
        result = ReimbursementCalculator(FakeSnapshots({"fbaEstimatedFeesData": FEES})).fee_overcharges("u1", "US", "NA")
        assert result["message"] == "No sales data found"


class TestCalculationJobs:
    """Test the scheduled job wrappers"""

    @pytest.mark.asyncio
    async def test_job_persists_result(self, snapshot_store):
        result = await calculate_shipment_discrepancy(user_id="u1", country="US", region="NA", snapshots=snapshot_store)
        assert result["success"]
        assert snapshot_store.saved[-1][3] == "calculateShipmentDiscrepancy"

    @pytest.mark.asyncio
    async def test_job_reports_calculation_error(self, snapshot_store):
        snapshot_store.fail = True
        result = await calculate_fee_reimbursement(user_id="u1", country="US", region="NA", snapshots=snapshot_store)
        assert result["success"] is False
        assert "calculateFeeReimbursement" in result["message"]
