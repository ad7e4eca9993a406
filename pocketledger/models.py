from datetime import datetime
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base
from .errors import CorruptDataError


class TxType(str, Enum):
    INCOME = "Income"
    EXPENSE = "Expense"
    TRANSFER = "Transfer"


tx_tags = Table(
    "tx_tags",
    Base.metadata,
    Column("tx_id", Integer, ForeignKey("txs.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
)


class TxMethod(Base):
    """A named source or sink of money such as a bank account or a wallet."""

    __tablename__ = "tx_methods"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    position = Column(Integer, nullable=False, default=0)


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)


class Transaction(Base):
    """A single income, expense or transfer.

    ``amount`` is stored in cents. ``to_method_id`` is only set for transfers.
    """

    __tablename__ = "txs"

    id = Column(Integer, primary_key=True)
    date = Column(Date, nullable=False, index=True)
    details = Column(Text)
    from_method_id = Column("from_method", Integer, ForeignKey("tx_methods.id"), nullable=False)
    to_method_id = Column("to_method", Integer, ForeignKey("tx_methods.id"))
    amount = Column(BigInteger, nullable=False)
    tx_type = Column(String, nullable=False)
    display_order = Column(Integer, nullable=False, default=0)

    from_method = relationship("TxMethod", foreign_keys=[from_method_id], lazy="joined")
    to_method = relationship("TxMethod", foreign_keys=[to_method_id], lazy="joined")
    tags = relationship("Tag", secondary=tx_tags, lazy="selectin", order_by="Tag.id")

    @property
    def kind(self) -> TxType:
        try:
            return TxType(self.tx_type)
        except ValueError as exc:
            raise CorruptDataError(
                f"Transaction {self.id} has unknown type {self.tx_type!r}"
            ) from exc

    @property
    def cents(self) -> int:
        value = self.amount
        if isinstance(value, bool) or not isinstance(value, int):
            try:
                value = int(value)
            except (TypeError, ValueError) as exc:
                raise CorruptDataError(
                    f"Transaction {self.id} has unreadable amount {self.amount!r}"
                ) from exc
        return value

    @property
    def tag_names(self) -> list[str]:
        return [t.name for t in self.tags]


class Balance(Base):
    """Ending balance of one method.

    Monthly rows hold the balance at the end of ``year``/``month``. The row with
    ``is_final_balance`` set holds the balance after the latest transaction.
    A missing monthly row means the balance was never computed.
    """

    __tablename__ = "balances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    method_id = Column(Integer, ForeignKey("tx_methods.id"), nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    balance = Column(BigInteger, nullable=False, default=0)
    is_final_balance = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("method_id", "year", "month", "is_final_balance"),
        Index("ix_balances_year_month", "year", "month"),
    )


class Activity(Base):
    """An entry of the append-only activity log."""

    __tablename__ = "activities"

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    activity_type = Column(String, nullable=False)

    txs = relationship(
        "ActivityTx",
        back_populates="activity",
        cascade="all, delete-orphan",
        order_by="ActivityTx.id",
    )


class ActivityTx(Base):
    """Copy of a transaction as it looked when an activity happened.

    Search activities store the filters instead, so every column is optional.
    """

    __tablename__ = "activity_txs"

    id = Column(Integer, primary_key=True)
    activity_id = Column(Integer, ForeignKey("activities.id"), nullable=False, index=True)
    tx_id = Column(Integer)
    date = Column(String)
    details = Column(Text)
    from_method = Column(String)
    to_method = Column(String)
    amount = Column(BigInteger)
    amount_type = Column(String)
    tx_type = Column(String)
    tags = Column(Text)
    display_order = Column(Integer)

    activity = relationship("Activity", back_populates="txs")
