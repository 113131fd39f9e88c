#!/usr/bin/env python3
import sys
import asyncio
import logging
import argparse
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

# Add project root to path
sys.path.insert(0, ".")

from core.repositories import ReportSnapshotRepository
from core.logging import setup_json_logging
from collection.jobs.snapshots import save_snapshot

logger = logging.getLogger(__name__)

DAMAGED_REASON_CODES = ("6", "7", "E", "H", "K", "U")
DISPOSED_DISPOSITIONS = ("SELLABLE", "WAREHOUSE_DAMAGED", "EXPIRED")


def _money(series: pd.Series) -> pd.Series:
    """Strip currency symbols and separators, coerce to float"""
    cleaned = series.astype(str).str.replace(r"[^0-9.\-]", "", regex=True)
    return pd.to_numeric(cleaned, errors="coerce").fillna(0.0)


def _frame(rows: Any) -> pd.DataFrame:
    if not isinstance(rows, list) or not rows:
        return pd.DataFrame()
    df = pd.DataFrame(rows)
    # Report headers come as "reference-id", "Reference ID" or "reference_id"
    df.columns = [str(c).strip().lower().replace(" ", "_").replace("-", "_") for c in df.columns]
    return df


def _empty_result(message: str, **totals) -> Dict[str, Any]:
    return {"success": True, "message": message, "data": [], **totals}


class ReimbursementCalculator:
    """Reimbursement estimates computed from the latest persisted report snapshots"""

    def __init__(self, repository: Optional[ReportSnapshotRepository] = None):
        self.repository = repository or ReportSnapshotRepository()

    def _latest(self, user_id: str, country: str, region: str, data_key: str) -> Any:
        return self.repository.latest(user_id, country, region, data_key)

    def _price_maps(self, user_id: str, country: str, region: str):
        """SKU -> price and ASIN -> price from the merchant listings snapshot"""
        listings = _frame(self._latest(user_id, country, region, "merchantListings"))
        if listings.empty or "price" not in listings:
            return {}, {}
        listings["price"] = _money(listings["price"])
        sku_col = "seller_sku" if "seller_sku" in listings else "sku"
        asin_col = "asin1" if "asin1" in listings else "asin"
        by_sku = dict(zip(listings.get(sku_col, pd.Series(dtype=str)).astype(str).str.strip(), listings["price"]))
        by_asin = dict(zip(listings.get(asin_col, pd.Series(dtype=str)).astype(str).str.strip(), listings["price"]))
        return by_sku, by_asin

    def _fee_maps(self, user_id: str, country: str, region: str):
        """FNSKU -> fee and ASIN -> fee, keeping the highest estimate per key"""
        fees = _frame(self._latest(user_id, country, region, "fbaEstimatedFeesData"))
        if fees.empty or "estimated_fee_total" not in fees:
            return {}, {}
        fees["estimated_fee_total"] = _money(fees["estimated_fee_total"])
        maps = []
        for key in ("fnsku", "asin"):
            if key not in fees:
                maps.append({})
                continue
            grouped = fees.assign(**{key: fees[key].astype(str).str.strip()}).groupby(key)["estimated_fee_total"].max()
            maps.append(grouped.to_dict())
        return maps[0], maps[1]

    @staticmethod
    def _per_unit(df: pd.DataFrame, asin_price: Dict[str, float], fnsku_fee: Dict[str, float],
                  asin_fee: Dict[str, float]) -> pd.DataFrame:
        """Reimbursement per unit = sales price - estimated fees (fnsku first, then asin)"""
        df["salesPrice"] = df["asin"].map(asin_price).fillna(0.0)
        fee = df["fnsku"].map(fnsku_fee).fillna(0.0) if "fnsku" in df else pd.Series(0.0, index=df.index)
        fee = fee.where(fee > 0, df["asin"].map(asin_fee).fillna(0.0))
        df["estimatedFees"] = fee
        df["reimbursementPerUnit"] = df["salesPrice"] - df["estimatedFees"]
        return df

    def shipment_discrepancy(self, user_id: str, country: str, region: str) -> Dict[str, Any]:
        """Units shipped but never received, valued at price minus fees"""
        snapshot = self._latest(user_id, country, region, "shipment") or {}
        shipments = snapshot.get("shipments", []) if isinstance(snapshot, dict) else []
        items = [
            {
                "shipmentId": s.get("ShipmentId", ""),
                "shipmentName": s.get("ShipmentName", ""),
                "sellerSKU": (item.get("SellerSKU") or "").strip(),
                "fnsku": (item.get("FulfillmentNetworkSKU") or "").strip(),
                "quantityShipped": item.get("QuantityShipped", 0),
                "quantityReceived": item.get("QuantityReceived", 0),
            }
            for s in shipments for item in s.get("itemDetails") or []
        ]
        if not items:
            return _empty_result("No shipment data found", totalDiscrepancy=0, totalReimbursement=0.0)

        sku_price, _ = self._price_maps(user_id, country, region)
        fnsku_fee, _ = self._fee_maps(user_id, country, region)

        df = pd.DataFrame(items)
        for col in ("quantityShipped", "quantityReceived"):
            df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0).astype(int)
        df["discrepancy"] = df["quantityShipped"] - df["quantityReceived"]
        df["productPrice"] = df["sellerSKU"].map(sku_price).fillna(0.0)
        df["estimatedFees"] = df["fnsku"].map(fnsku_fee).fillna(0.0)
        df["actualAmount"] = df["productPrice"] - df["estimatedFees"]
        df["reimbursementAmount"] = df["actualAmount"] * df["discrepancy"]
        df = df[(df["discrepancy"] > 0) & (df["reimbursementAmount"] > 0)].round(2)

        total = round(float(df["reimbursementAmount"].sum()), 2)
        return {
            "success": True,
            "message": "Shipment discrepancy calculation completed successfully",
            "data": df.to_dict(orient="records"),
            "totalDiscrepancy": int(df["discrepancy"].sum()),
            "totalReimbursement": total,
        }

    def lost_inventory(self, user_id: str, country: str, region: str) -> Dict[str, Any]:
        """Lost minus found minus already reimbursed units, per ASIN"""
        ledger = _frame(self._latest(user_id, country, region, "ledgerSummaryViewData"))
        if ledger.empty or "asin" not in ledger:
            return _empty_result("No ledger data found", totalLostUnits=0, totalExpectedAmount=0.0)

        ledger["lost"] = _money(ledger.get("lost", pd.Series(0, index=ledger.index))).abs()
        ledger["found"] = _money(ledger.get("found", pd.Series(0, index=ledger.index)))
        ledger["asin"] = ledger["asin"].astype(str).str.strip()
        if "fnsku" not in ledger:
            ledger["fnsku"] = ""
        per_asin = ledger.groupby("asin", as_index=False).agg(
            lostUnits=("lost", "sum"), foundUnits=("found", "sum"), fnsku=("fnsku", "first")
        )

        reimbursed = _frame(self._latest(user_id, country, region, "fbaReimbursementsData"))
        if not reimbursed.empty and {"asin", "quantity_reimbursed_total"} <= set(reimbursed.columns):
            reimbursed["quantity_reimbursed_total"] = _money(reimbursed["quantity_reimbursed_total"])
            units = reimbursed.groupby(reimbursed["asin"].astype(str).str.strip())["quantity_reimbursed_total"].sum()
            per_asin["reimbursedUnits"] = per_asin["asin"].map(units).fillna(0)
        else:
            per_asin["reimbursedUnits"] = 0

        _, asin_price = self._price_maps(user_id, country, region)
        fnsku_fee, asin_fee = self._fee_maps(user_id, country, region)
        per_asin["discrepancyUnits"] = per_asin["lostUnits"] - per_asin["foundUnits"] - per_asin["reimbursedUnits"]
        per_asin = self._per_unit(per_asin, asin_price, fnsku_fee, asin_fee)
        per_asin["expectedAmount"] = per_asin["discrepancyUnits"] * per_asin["reimbursementPerUnit"]
        result = per_asin[(per_asin["discrepancyUnits"] > 0) & (per_asin["expectedAmount"] > 0)].round(2)

        return {
            "success": True,
            "message": "Lost inventory reimbursement calculation completed successfully",
            "data": result.to_dict(orient="records"),
            "totalLostUnits": int(result["discrepancyUnits"].sum()),
            "totalExpectedAmount": round(float(result["expectedAmount"].sum()), 2),
        }

    def _ledger_adjustments(self, user_id: str, country: str, region: str, label: str, reasons,
                            quantity_column: str, dispositions=None) -> Dict[str, Any]:
        ledger = _frame(self._latest(user_id, country, region, "ledgerDetailViewData"))
        total_key = f"total{label}Units"
        if ledger.empty or "asin" not in ledger or quantity_column not in ledger:
            return _empty_result("No ledger detail data found", **{total_key: 0, "totalExpectedAmount": 0.0})

        ledger["reason"] = ledger.get("reason", pd.Series("", index=ledger.index)).astype(str).str.strip().str.upper()
        mask = ledger["reason"].isin(reasons)
        if dispositions is not None:
            ledger["disposition"] = ledger.get("disposition", pd.Series("", index=ledger.index)) \
                .astype(str).str.strip().str.upper()
            mask &= ledger["disposition"].isin(dispositions)

        df = ledger[mask].copy()
        df["units"] = _money(df[quantity_column]).abs()
        df = df[df["units"] > 0]
        if "fnsku" not in df:
            df["fnsku"] = ""
        if "reference_id" not in df:
            df["reference_id"] = ""
        df["asin"] = df["asin"].astype(str).str.strip()
        df["fnsku"] = df["fnsku"].astype(str).str.strip()
        # One adjustment per reference id
        df = df.drop_duplicates(subset=["reference_id", "asin", "fnsku"] + (["disposition"] if dispositions else []))

        _, asin_price = self._price_maps(user_id, country, region)
        fnsku_fee, asin_fee = self._fee_maps(user_id, country, region)
        df = self._per_unit(df, asin_price, fnsku_fee, asin_fee)
        df["expectedAmount"] = df["units"] * df["reimbursementPerUnit"]
        df = df[df["expectedAmount"] > 0]

        columns = ["reference_id", "asin", "fnsku", "reason", "units", "salesPrice",
                   "estimatedFees", "reimbursementPerUnit", "expectedAmount"]
        if dispositions is not None:
            columns.insert(4, "disposition")
        result = df[columns].rename(columns={"reference_id": "referenceId"}).round(2)

        return {
            "success": True,
            "message": f"{label} inventory reimbursement calculation completed successfully",
            "data": result.to_dict(orient="records"),
            total_key: int(result["units"].sum()),
            "totalExpectedAmount": round(float(result["expectedAmount"].sum()), 2),
        }

    def damaged_inventory(self, user_id: str, country: str, region: str) -> Dict[str, Any]:
        """Unreconciled warehouse-damage adjustments"""
        return self._ledger_adjustments(user_id, country, region, "Damaged", DAMAGED_REASON_CODES,
                                        "unreconciled_quantity")

    def disposed_inventory(self, user_id: str, country: str, region: str) -> Dict[str, Any]:
        return self._ledger_adjustments(user_id, country, region, "Disposed", ("D",), "quantity",
                                        dispositions=DISPOSED_DISPOSITIONS)

    def fee_overcharges(self, user_id: str, country: str, region: str) -> Dict[str, Any]:
        """
        Fee reimbursement: (charged fee - expected fee) x units sold.

        The expected per-unit fee comes from the estimated fees report; units sold
        come from the economics snapshot's per-ASIN breakdown.
        """
        fees = _frame(self._latest(user_id, country, region, "fbaEstimatedFeesData"))
        required = {"asin", "estimated_fee_total", "expected_fulfillment_fee_per_unit"}
        if fees.empty or not required <= set(fees.columns):
            return _empty_result("No fee data found", totalExpectedAmount=0.0)

        economics = self._latest(user_id, country, region, "mcpEconomicsData") or {}
        breakdown = _frame(economics.get("asinBreakdown", []) if isinstance(economics, dict) else [])
        if breakdown.empty or not {"parentasin", "unitsordered"} <= set(breakdown.columns):
            return _empty_result("No sales data found", totalExpectedAmount=0.0)
        breakdown["unitsordered"] = pd.to_numeric(breakdown["unitsordered"], errors="coerce").fillna(0)
        units_sold = breakdown.groupby(breakdown["parentasin"].astype(str))["unitsordered"].sum()

        fees["asin"] = fees["asin"].astype(str).str.strip()
        fees["chargedFees"] = _money(fees["estimated_fee_total"])
        fees["expectedFees"] = _money(fees["expected_fulfillment_fee_per_unit"])
        fees["feeDifference"] = fees["chargedFees"] - fees["expectedFees"]
        fees["unitsSold"] = fees["asin"].map(units_sold).fillna(0).astype(int)
        fees["expectedAmount"] = fees["feeDifference"] * fees["unitsSold"]
        result = fees[(fees["feeDifference"] > 0) & (fees["unitsSold"] > 0) & np.isfinite(fees["expectedAmount"])]
        result = result[["asin", "chargedFees", "expectedFees", "feeDifference", "unitsSold", "expectedAmount"]].round(2)

        return {
            "success": True,
            "message": "Fee reimbursement calculation completed successfully",
            "data": result.to_dict(orient="records"),
            "totalExpectedAmount": round(float(result["expectedAmount"].sum()), 2),
        }


def _calculation_job(data_key: str, method: str):
    """Wrap a calculator method as an async scheduled job that persists its result"""

    async def job(*, user_id: str, country: str, region: str, snapshots=None) -> Dict[str, Any]:
        calculator = ReimbursementCalculator(snapshots)
        try:
            result = await asyncio.to_thread(getattr(calculator, method), user_id, country, region)
        except Exception as e:
            logger.error(f"{data_key} calculation failed: {e}", extra={"user_id": user_id, "data_key": data_key})
            return {"success": False, "message": f"Error calculating {data_key}: {e}", "data": []}
        await save_snapshot(user_id, country, region, data_key, result, calculator.repository)
        return result

    job.__name__ = method
    job.__qualname__ = method
    return job


calculate_shipment_discrepancy = _calculation_job("calculateShipmentDiscrepancy", "shipment_discrepancy")
calculate_lost_inventory_reimbursement = _calculation_job("calculateLostInventoryReimbursement", "lost_inventory")
calculate_damaged_inventory_reimbursement = _calculation_job(
    "calculateDamagedInventoryReimbursement", "damaged_inventory"
)
calculate_disposed_inventory_reimbursement = _calculation_job(
    "calculateDisposedInventoryReimbursement", "disposed_inventory"
)
calculate_fee_reimbursement = _calculation_job("calculateFeeReimbursement", "fee_overcharges")


def main():
    parser = argparse.ArgumentParser(description="Compute reimbursement estimates from stored reports")
    parser.add_argument("--user", required=True, help="User id")
    parser.add_argument("--country", required=True, help="Marketplace country code")
    parser.add_argument("--region", required=True, help="Region (NA, EU, FE)")
    parser.add_argument("--pretty", action="store_true", help="Pretty print JSON output")

    args = parser.parse_args()

    setup_json_logging()

    calculator = ReimbursementCalculator()
    trace_id = f"reimbursement_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}"
    logger.info("Starting reimbursement calculation", extra={"trace_id": trace_id, "user_id": args.user})

    results = {
        "shipmentDiscrepancy": calculator.shipment_discrepancy(args.user, args.country, args.region),
        "lostInventory": calculator.lost_inventory(args.user, args.country, args.region),
        "damagedInventory": calculator.damaged_inventory(args.user, args.country, args.region),
        "disposedInventory": calculator.disposed_inventory(args.user, args.country, args.region),
        "feeReimbursement": calculator.fee_overcharges(args.user, args.country, args.region),
    }

    if args.pretty:
        print(json.dumps(results, indent=2, default=str))
    else:
        print(json.dumps(results, default=str))


if __name__ == "__main__":
    main()
