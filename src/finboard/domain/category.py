"""Category domain service."""

from typing import Optional

from finboard.database.base import Database
from finboard.domain.entities import (
    Category as CategoryEntity,
    FlowDirection,
    TransactionFilter,
    category_accepts,
)
from finboard.domain.errors import (
    ConstraintViolationError,
    NotFoundError,
    ValidationError,
    category_not_found,
)
from finboard.domain.events import EventBus, FinanceEvent, entity_event_type

DEFAULT_CATEGORIES = {
    FlowDirection.INCOME: ["Salário", "Rendimentos", "Outras Receitas"],
    FlowDirection.EXPENSE: [
        "Alimentação",
        "Moradia",
        "Transporte",
        "Saúde",
        "Educação",
        "Lazer",
        "Contas",
        "Outras Despesas",
    ],
    FlowDirection.NEUTRAL: ["Transferências", "Investimentos"],
}


class CategoryService:
    """Service for managing categories."""

    def __init__(self, db: Database, bus: Optional[EventBus] = None):
        """Initialize category service.

        Args:
            db: Database instance
            bus: Event bus notified after each mutation
        """
        self.db = db
        self.bus = bus or EventBus()

    def _publish(self, operation: str, category: CategoryEntity) -> None:
        self.bus.publish(
            FinanceEvent(
                type=entity_event_type(operation),
                entity_kind="category",
                operation=operation,
                payload={"id": category.id, "category": category},
            )
        )

    def create_category(
        self, name: str, direction: FlowDirection = FlowDirection.EXPENSE
    ) -> CategoryEntity:
        """Create a category.

        Args:
            name: Category name (unique, case-insensitive)
            direction: Flow direction the category accepts

        Returns:
            The stored category

        Raises:
            ConstraintViolationError: If the name already exists
        """
        name = name.strip() if name else ""
        if not name:
            raise ValidationError("Category name must not be empty")
        with self.db.atomic():
            if self.db.get_category_by_name(name) is not None:
                raise ConstraintViolationError(f"Category '{name}' already exists")
            category_id = self.db.create_category(name=name, direction=FlowDirection(direction))
            category = self.db.get_category(category_id)
        self._publish("created", category)
        return category

    def get_category(self, category_id: str) -> Optional[CategoryEntity]:
        """Get category by ID.

        Args:
            category_id: Category ID

        Returns:
            Category entity or None if not found
        """
        return self.db.get_category(category_id)

    def get_category_by_name(self, name: str) -> Optional[CategoryEntity]:
        """Get category by name (case-insensitive)."""
        return self.db.get_category_by_name(name)

    def require_category(self, category_id: str) -> CategoryEntity:
        """Get category by ID or raise NotFoundError."""
        category = self.db.get_category(category_id)
        if category is None:
            raise NotFoundError(category_not_found(category_id))
        return category

    def list_categories(self, direction: Optional[FlowDirection] = None) -> list[CategoryEntity]:
        """List categories, optionally only those with one direction."""
        categories = self.db.list_categories()
        if direction is not None:
            categories = [c for c in categories if c.direction == FlowDirection(direction)]
        return categories

    def update_category(
        self,
        category_id: str,
        name: Optional[str] = None,
        direction: Optional[FlowDirection] = None,
    ) -> CategoryEntity:
        """Rename a category or change its direction.

        Raises:
            ConstraintViolationError: If the new direction rejects transactions
                already classified under the category
        """
        fields = {}
        with self.db.atomic():
            self.require_category(category_id)
            if name is not None:
                name = name.strip()
                if not name:
                    raise ValidationError("Category name must not be empty")
                existing = self.db.get_category_by_name(name)
                if existing is not None and existing.id != category_id:
                    raise ConstraintViolationError(f"Category '{name}' already exists")
                fields["name"] = name
            if direction is not None:
                direction = FlowDirection(direction)
                used = self.db.list_transactions(TransactionFilter(category_id=category_id))
                if any(not category_accepts(direction, t.operation_type) for t in used):
                    raise ConstraintViolationError(
                        f"Category {category_id} classifies transactions that a "
                        f"'{direction.value}' category cannot accept"
                    )
                fields["direction"] = direction
            self.db.update_category(category_id, **fields)
            category = self.db.get_category(category_id)
        self._publish("updated", category)
        return category

    def delete_category(self, category_id: str) -> None:
        """Delete a category. Transactions and rules using it become uncategorized."""
        with self.db.atomic():
            category = self.require_category(category_id)
            self.db.delete_category(category_id)
        self._publish("deleted", category)

    def init_default_categories(self) -> int:
        """Create the default category set, skipping names that already exist.

        Returns:
            Number of categories created
        """
        created = 0
        for direction, names in DEFAULT_CATEGORIES.items():
            for name in names:
                if self.db.get_category_by_name(name) is None:
                    self.create_category(name, direction)
                    created += 1
        return created
