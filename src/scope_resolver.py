"""
RSS Settlement - Scope Resolution

Turns an optionally partial (aggregator, provider, product class) filter into
the concrete (aggregator, provider, model) triples a settlement job covers.
Empty filters mean "all"; the result is the cross product bounded by the
filters that were given.
"""

import logging

from rss_errors import ExceptionType, RSSError, ValidationError
from rss_models import Aggregator, Provider, RSSModel
from storage.base import StorageBackend

logger = logging.getLogger(__name__)

ScopeEntry = tuple[Aggregator, Provider, RSSModel]


class ScopeResolver:
    """Resolves and validates settlement scopes against the directory."""

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    def validate_scope(
        self,
        aggregator_id: str | None = None,
        provider_id: str | None = None,
        product_class: str | None = None,
    ) -> None:
        """
        Check the consistency of a scope.

        Only scopes naming an aggregator are checked: the provider must belong
        to it and, when a product class is given too, a model must exist for
        the triple.

        Raises:
            RSSError: If the aggregator does not exist
            ValidationError: INVALID_PROVIDER or NON_EXISTENT_RESOURCE_ID
        """
        if not aggregator_id:
            return

        if self.storage.get_aggregator(aggregator_id) is None:
            raise RSSError(ExceptionType.NON_EXISTENT_RESOURCE_ID, [aggregator_id])

        if not provider_id:
            return

        if self.storage.get_provider(aggregator_id, provider_id) is None:
            raise ValidationError(ExceptionType.INVALID_PROVIDER, [provider_id, aggregator_id])

        if product_class and not self.storage.model_exists(aggregator_id, provider_id, product_class):
            raise ValidationError(ExceptionType.NON_EXISTENT_RESOURCE_ID, [product_class])

    def get_aggregators(self, aggregator_id: str | None = None) -> list[Aggregator]:
        if not aggregator_id:
            return self.storage.list_aggregators()

        aggregator = self.storage.get_aggregator(aggregator_id)
        if aggregator is None:
            raise RSSError(ExceptionType.NON_EXISTENT_RESOURCE_ID, [aggregator_id])
        return [aggregator]

    def get_providers(self, aggregator_id: str, provider_id: str | None = None) -> list[Provider]:
        if not provider_id:
            return self.storage.list_providers(aggregator_id)

        provider = self.storage.get_provider(aggregator_id, provider_id)
        # Aggregators that do not own the provider contribute nothing
        return [provider] if provider is not None else []

    def get_models(
        self, aggregator_id: str, provider_id: str, product_class: str | None = None
    ) -> list[RSSModel]:
        return self.storage.list_models(aggregator_id, provider_id, product_class or None)

    def resolve_scope(
        self,
        aggregator_id: str | None = None,
        provider_id: str | None = None,
        product_class: str | None = None,
    ) -> list[ScopeEntry]:
        """
        Validate a scope and expand it into (aggregator, provider, model) triples.

        Raises:
            RSSError / ValidationError: See validate_scope()
        """
        self.validate_scope(aggregator_id, provider_id, product_class)

        scope: list[ScopeEntry] = []
        for aggregator in self.get_aggregators(aggregator_id):
            for provider in self.get_providers(aggregator.aggregator_id, provider_id):
                for model in self.get_models(
                    aggregator.aggregator_id, provider.provider_id, product_class
                ):
                    scope.append((aggregator, provider, model))

        logger.debug(f"Resolved scope ({aggregator_id}, {provider_id}, {product_class}): "
                     f"{len(scope)} models")
        return scope
