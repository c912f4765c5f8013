"""
Unit tests for IssuedTokenRegistry.
"""
import threading

import pytest

from docgate.auth.registry import IssuedTokenRegistry


class TestRegistry:
    """Membership and lapse behaviour."""

    def test_registered_id_is_present(self, registry, clock):
        registry.register('jti-1', clock() + 60)
        assert registry.is_registered('jti-1')

    def test_unknown_and_empty_ids_are_absent(self, registry):
        assert not registry.is_registered('never-issued')
        assert not registry.is_registered(None)
        assert not registry.is_registered('')

    def test_register_rejects_empty_id(self, registry):
        with pytest.raises(ValueError):
            registry.register('')

    def test_entry_lapses_at_expiry(self, registry, clock):
        registry.register('jti-1', clock() + 60)

        clock.advance(59)
        assert registry.is_registered('jti-1')

        clock.advance(1)
        assert not registry.is_registered('jti-1')

    def test_default_ttl_applies(self, clock):
        registry = IssuedTokenRegistry(default_ttl=10, clock=clock)
        registry.register('jti-1')

        clock.advance(10)
        assert not registry.is_registered('jti-1')

    def test_register_is_idempotent_and_keeps_later_expiry(self, registry, clock):
        registry.register('jti-1', clock() + 100)
        registry.register('jti-1', clock() + 10)

        assert len(registry) == 1
        clock.advance(50)
        assert registry.is_registered('jti-1')

    def test_lapsed_entries_are_purged(self, registry, clock):
        for index in range(5):
            registry.register(f"old-{index}", clock() + 10)
        clock.advance(10)
        registry.register('fresh', clock() + 10)

        assert len(registry) == 1

    def test_discard(self, registry, clock):
        registry.register('jti-1', clock() + 60)
        registry.discard('jti-1')
        registry.discard('not-there')

        assert not registry.is_registered('jti-1')

    def test_concurrent_registration(self, registry, clock):
        expires_at = clock() + 60

        def register_batch(prefix):
            for index in range(200):
                registry.register(f"{prefix}-{index}", expires_at)

        threads = [threading.Thread(target=register_batch, args=(name,)) for name in 'abcd']
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(registry) == 800
