"""
Unit of Work

Explicit transaction boundary for multi-row business operations (checkout,
payment resolution, subscription creation). ``unit_of_work(work)`` opens one
database transaction, hands ``work`` a transaction-scoped repository handle
and commits when ``work`` returns; any exception rolls the whole unit back
and propagates to the caller.

The handle offers the only write primitives the money paths need:

- ``locked(Model)``           → queryset that row-locks what it reads
- ``conditional_decrement``   → ``UPDATE ... SET f = f - n WHERE f >= n``
- ``compare_and_set``         → ``UPDATE ... SET ... WHERE f = expected``
- ``on_commit``               → side effects that must only run after commit

Author: Storefront Development Team
Version: 1.0.0
"""

from typing import Callable, TypeVar, Type, Any

from django.db import DEFAULT_DB_ALIAS, models, transaction
from django.db.models import F, QuerySet

T = TypeVar("T")


class TransactionalRepositories:
    """Repository handle bound to the database alias of an open transaction."""

    def __init__(self, using: str = DEFAULT_DB_ALIAS) -> None:
        self.using = using

    def query(self, model: Type[models.Model]) -> QuerySet:
        return model._default_manager.using(self.using)

    def locked(self, model: Type[models.Model]) -> QuerySet:
        return self.query(model).select_for_update()

    def create(self, model: Type[models.Model], **fields: Any) -> models.Model:
        return self.query(model).create(**fields)

    def conditional_decrement(
        self, model: Type[models.Model], pk: Any, field: str, amount: int
    ) -> bool:
        """
        Atomically subtract ``amount`` from ``field`` only if enough is left.

        Returns False (and changes nothing) when the row holds less than
        ``amount``, so two concurrent decrements can never drive it negative.
        """
        updated = (
            self.query(model)
            .filter(pk=pk, **{f"{field}__gte": amount})
            .update(**{field: F(field) - amount})
        )
        return updated == 1

    def increment(self, model: Type[models.Model], pk: Any, field: str, amount: int) -> bool:
        updated = self.query(model).filter(pk=pk).update(**{field: F(field) + amount})
        return updated == 1

    def compare_and_set(
        self, model: Type[models.Model], pk: Any, field: str, expected: Any, **changes: Any
    ) -> bool:
        """
        Apply ``changes`` only if ``field`` still equals ``expected``.

        Returns True when this call performed the transition.
        """
        updated = self.query(model).filter(pk=pk, **{field: expected}).update(**changes)
        return updated == 1

    def on_commit(self, callback: Callable[[], None]) -> None:
        transaction.on_commit(callback, using=self.using)


def unit_of_work(
    work: Callable[[TransactionalRepositories], T], using: str = DEFAULT_DB_ALIAS
) -> T:
    """
    Run ``work`` inside a single database transaction.

    Example:
        >>> def place(repos):
        ...     order = repos.create(Order, ...)
        ...     if not repos.conditional_decrement(Product, pid, "stock_quantity", 2):
        ...         raise InsufficientStock(...)
        ...     return order
        >>> order = unit_of_work(place)
    """
    with transaction.atomic(using=using):
        return work(TransactionalRepositories(using))
