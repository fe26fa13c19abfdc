# inventory.py
import logging
from typing import Any, List, Mapping, Union

import databases

from activity import ActivityRecorder
from errors import InsufficientStock, InvalidQuantity, NotFound
from models import ActionKind, Drug as DrugRow
from schemas import Drug, DrugIn, parse_drug_fields
from security import SessionAssertion

logger = logging.getLogger(__name__)

drugs = DrugRow.__table__


def _drug_from_row(row) -> Drug:
    return Drug(
        id=row["id"],
        name=row["name"],
        dosage=row["dosage"],
        quantity=row["quantity"],
        price=row["price"],
        brand=row["brand"],
        location=row["location"],
    )


def _drug_not_found(drug_id: int) -> NotFound:
    return NotFound(f"Drug ID {drug_id} not found")


class InventoryLedger:
    """
    Drug stock. `sell` is the only way quantity goes down, and it does so
    with a single conditional UPDATE so concurrent sales of the same drug
    can never oversell.
    """

    def __init__(self, database: databases.Database, recorder: ActivityRecorder):
        self.database = database
        self.recorder = recorder

    async def list(self) -> List[Drug]:
        rows = await self.database.fetch_all(drugs.select().order_by(drugs.c.id.asc()))
        return [_drug_from_row(r) for r in rows]

    async def get(self, drug_id: int) -> Drug:
        row = await self.database.fetch_one(drugs.select().where(drugs.c.id == drug_id))
        if row is None:
            raise _drug_not_found(drug_id)
        return _drug_from_row(row)

    async def create(self, actor: SessionAssertion, fields: Union[DrugIn, Mapping[str, Any]]) -> Drug:
        data = parse_drug_fields(fields)
        query = drugs.insert().values(**data.model_dump()).returning(*drugs.c)
        drug = _drug_from_row(await self.database.fetch_one(query))

        await self.recorder.record(
            actor.account_id, actor.username, ActionKind.STOCK_ADDED,
            f"Admin added new drug: {drug.name} (Qty: {drug.quantity}, Price: {drug.price})",
        )
        return drug

    async def update(self, actor: SessionAssertion, drug_id: int, fields: Union[DrugIn, Mapping[str, Any]]) -> Drug:
        """Full replace: every field is overwritten."""
        data = parse_drug_fields(fields)
        query = (
            drugs.update()
            .where(drugs.c.id == drug_id)
            .values(**data.model_dump())
            .returning(*drugs.c)
        )
        row = await self.database.fetch_one(query)
        if row is None:
            raise _drug_not_found(drug_id)
        drug = _drug_from_row(row)

        await self.recorder.record(
            actor.account_id, actor.username, ActionKind.STOCK_UPDATED,
            f"Admin updated drug ID {drug.id}: {drug.name} "
            f"(Qty: {drug.quantity}, Price: {drug.price})",
        )
        return drug

    async def delete(self, actor: SessionAssertion, drug_id: int) -> None:
        # RETURNING captures the name in the same statement that removes the row
        query = drugs.delete().where(drugs.c.id == drug_id).returning(drugs.c.name)
        row = await self.database.fetch_one(query)
        if row is None:
            raise _drug_not_found(drug_id)

        await self.recorder.record(
            actor.account_id, actor.username, ActionKind.STOCK_DELETED,
            f"Admin deleted drug: {row['name']} (ID: {drug_id})",
        )

    async def sell(self, actor: SessionAssertion, drug_id: int, quantity_sold: Any) -> Drug:
        if isinstance(quantity_sold, bool) or not isinstance(quantity_sold, int) or quantity_sold <= 0:
            raise InvalidQuantity()

        # Decrement-if-sufficient as one statement; the database serializes
        # concurrent writers on the row.
        query = (
            drugs.update()
            .where(drugs.c.id == drug_id)
            .where(drugs.c.quantity >= quantity_sold)
            .values(quantity=drugs.c.quantity - quantity_sold)
            .returning(*drugs.c)
        )
        row = await self.database.fetch_one(query)
        if row is None:
            # Nothing was written; work out why for the caller.
            current = await self.database.fetch_one(
                drugs.select().where(drugs.c.id == drug_id)
            )
            if current is None:
                raise _drug_not_found(drug_id)
            logger.info(
                "Rejected sale drug_id=%s requested=%s available=%s user=%s",
                drug_id, quantity_sold, current["quantity"], actor.username,
            )
            raise InsufficientStock(current["name"], current["quantity"])

        drug = _drug_from_row(row)
        await self.recorder.record(
            actor.account_id, actor.username, ActionKind.DRUG_SOLD,
            f"{actor.role.value.capitalize()} sold {quantity_sold} unit(s) of "
            f"{drug.name} (ID: {drug.id}). Remaining stock: {drug.quantity}",
        )
        return drug
