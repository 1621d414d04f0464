"""
Database operations module for budget tree persistence.

This module is the persistence collaborator of the engine: it loads the
full set of nodes at startup and saves the full set after each mutation,
using SQLAlchemy ORM. Supports SQLite by default with easy migration to
other databases.
"""

import logging
from datetime import UTC, datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    create_engine,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from budget_models import BudgetNode, NodeKind, NodeTransaction, Position, TransactionType, as_utc
from exceptions import DatabaseError
from utils import resolve_connection_string

# Configure logging
logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone awareness.

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(UTC)


# Base class for declarative models
Base = declarative_base()


class BudgetNodeRecord(Base):
    """
    SQLAlchemy model representing one budget tree node.

    Attributes:
        id: Node id (generated by the engine)
        sort_order: Position of the node in the store's iteration order
        name: Display name
        kind: bank, budget, or category
        allocated_amount: Money allocated to the node
        spent_amount: Money spent directly by the node
        parent_id: Parent node id (None for banks)
        child_ids: Ordered list of child ids
        position_x: Canvas x coordinate
        position_y: Canvas y coordinate
        icon: Icon name
        color: Hex colour
    """

    __tablename__ = "budget_nodes"

    id = Column(String(64), primary_key=True)
    sort_order = Column(Integer, nullable=False, default=0, index=True)
    name = Column(String(100), nullable=False)
    kind = Column(Enum(NodeKind), nullable=False, index=True)
    allocated_amount = Column(Float, nullable=False, default=0.0)
    spent_amount = Column(Float, nullable=False, default=0.0)
    parent_id = Column(String(64), nullable=True, index=True)
    child_ids = Column(JSON, nullable=False, default=list)
    position_x = Column(Float, nullable=False, default=0.0)
    position_y = Column(Float, nullable=False, default=0.0)
    icon = Column(String(50), nullable=False)
    color = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    transactions = relationship(
        "NodeTransactionRecord",
        back_populates="node",
        cascade="all, delete-orphan",
        order_by="NodeTransactionRecord.sequence",
    )

    def __repr__(self) -> str:
        """String representation of the node record."""
        return (
            f"<BudgetNodeRecord(id='{self.id}', kind={self.kind.value}, name='{self.name}', "
            f"allocated={self.allocated_amount}, spent={self.spent_amount})>"
        )


class NodeTransactionRecord(Base):
    """SQLAlchemy model for a transaction owned by a node."""

    __tablename__ = "node_transactions"

    id = Column(String(64), primary_key=True)
    node_id = Column(String(64), ForeignKey("budget_nodes.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False, default=0)
    amount = Column(Float, nullable=False)
    description = Column(String(255), nullable=False, default="")
    date = Column(DateTime(timezone=True), nullable=False)
    type = Column(Enum(TransactionType), nullable=False)
    merchant = Column(String(255), nullable=True)
    applied_delta = Column(Float, nullable=False, default=0.0)

    node = relationship("BudgetNodeRecord", back_populates="transactions")

    def __repr__(self) -> str:
        return (
            f"<NodeTransactionRecord(id='{self.id}', node_id='{self.node_id}', "
            f"type={self.type.value}, amount={self.amount})>"
        )


def node_to_record(node: BudgetNode, sort_order: int = 0) -> BudgetNodeRecord:
    """Convert an engine node into an ORM record (transactions included)."""
    record = BudgetNodeRecord(
        id=node.id,
        sort_order=sort_order,
        name=node.name,
        kind=node.kind,
        allocated_amount=node.allocated_amount,
        spent_amount=node.spent_amount,
        parent_id=node.parent_id,
        child_ids=list(node.child_ids),
        position_x=node.position.x,
        position_y=node.position.y,
        icon=node.icon,
        color=node.color,
    )
    record.transactions = [
        NodeTransactionRecord(
            id=t.id,
            sequence=index,
            amount=t.amount,
            description=t.description,
            date=t.date,
            type=t.type,
            merchant=t.merchant,
            applied_delta=t.applied_delta,
        )
        for index, t in enumerate(node.transactions)
    ]
    return record


def record_to_node(record: BudgetNodeRecord) -> BudgetNode:
    """Convert an ORM record back into an engine node."""
    return BudgetNode(
        id=record.id,
        name=record.name,
        kind=record.kind,
        allocated_amount=record.allocated_amount,
        spent_amount=record.spent_amount,
        parent_id=record.parent_id,
        child_ids=list(record.child_ids or []),
        position=Position(record.position_x, record.position_y),
        icon=record.icon,
        color=record.color,
        transactions=[
            NodeTransaction(
                id=t.id,
                amount=t.amount,
                description=t.description,
                date=as_utc(t.date),
                type=t.type,
                merchant=t.merchant,
                applied_delta=t.applied_delta,
            )
            for t in record.transactions
        ],
    )


class DatabaseManager:
    """
    Manages database connections and tree persistence.

    Implements the persistence contract of the engine: load_tree() at
    startup and save_tree() after each lifecycle mutation.
    """

    def __init__(self, connection_string: str):
        """
        Initialize the database manager.

        Args:
            connection_string: SQLAlchemy connection string (e.g., 'sqlite:///data/budget_tree.db')

        Raises:
            DatabaseError: If the engine cannot be created
        """
        try:
            self.engine = create_engine(connection_string, echo=False)
            self.SessionLocal = sessionmaker(bind=self.engine)
            logger.info(f"Database manager initialized with connection: {connection_string}")
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize database: {e}")
            raise DatabaseError(
                "Failed to initialize database",
                details={"connection_string": connection_string},
                original_error=e,
            ) from e

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "DatabaseManager":
        """Create a manager for the configured database and ensure its tables exist."""
        manager = cls(resolve_connection_string(config))
        manager.create_tables()
        return manager

    def create_tables(self) -> None:
        """
        Create all database tables if they don't exist.

        Raises:
            DatabaseError: If table creation fails
        """
        try:
            Base.metadata.create_all(self.engine)
            logger.info("Database tables created/verified successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database tables: {e}")
            raise DatabaseError("Failed to create database tables", original_error=e) from e

    def get_session(self) -> Session:
        """
        Get a new database session.

        Returns:
            SQLAlchemy session object

        Note:
            Caller is responsible for closing the session.
        """
        return self.SessionLocal()

    def load_tree(self, session: Optional[Session] = None) -> List[BudgetNode]:
        """
        Load every stored node in store order.

        Args:
            session: Optional existing session

        Returns:
            List of BudgetNode objects (empty when nothing is stored)

        Raises:
            DatabaseError: If the query fails
        """
        close_session = False
        if session is None:
            session = self.get_session()
            close_session = True

        try:
            records = session.query(BudgetNodeRecord).order_by(BudgetNodeRecord.sort_order).all()
            nodes = [record_to_node(record) for record in records]
            logger.debug(f"Loaded {len(nodes)} budget nodes")
            return nodes
        except SQLAlchemyError as e:
            logger.error(f"Failed to load budget tree: {e}")
            raise DatabaseError("Failed to load budget tree", original_error=e) from e
        finally:
            if close_session:
                session.close()

    def save_tree(self, nodes: Iterable[BudgetNode], session: Optional[Session] = None) -> int:
        """
        Replace the stored tree with the given nodes in one transaction.

        Args:
            nodes: Every node of the current tree
            session: Optional existing session

        Returns:
            Number of nodes saved

        Raises:
            DatabaseError: If the write fails (nothing is changed)
        """
        close_session = False
        if session is None:
            session = self.get_session()
            close_session = True

        try:
            session.query(NodeTransactionRecord).delete()
            session.query(BudgetNodeRecord).delete()
            records = [node_to_record(node, index) for index, node in enumerate(nodes)]
            session.add_all(records)
            session.commit()
            logger.info(f"Saved {len(records)} budget nodes")
            return len(records)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to save budget tree: {e}")
            raise DatabaseError("Failed to save budget tree", original_error=e) from e
        finally:
            if close_session:
                session.close()

    def get_node_count(self, session: Optional[Session] = None) -> int:
        """
        Get total number of stored nodes.

        Args:
            session: Optional existing session

        Returns:
            Number of nodes in the database
        """
        close_session = False
        if session is None:
            session = self.get_session()
            close_session = True

        try:
            return session.query(BudgetNodeRecord).count()
        except SQLAlchemyError as e:
            logger.error(f"Failed to count budget nodes: {e}")
            raise DatabaseError("Failed to count budget nodes", original_error=e) from e
        finally:
            if close_session:
                session.close()

    def close(self) -> None:
        """Close the database engine connection."""
        if hasattr(self, 'engine'):
            self.engine.dispose()
            logger.info("Database connection closed")
