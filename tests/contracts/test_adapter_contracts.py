"""Contract tests for the closed set of provider adapters.

Every registered factory must build an object that satisfies
``ProviderAdapter``, refuse to build without credentials, and expose a
non-repeating cascade that starts at the configured default model.
"""

import pytest

from resilient_gen.config.types import ProviderCredentials
from resilient_gen.core.exceptions import ErrorKind, ProviderNotConfiguredError
from resilient_gen.core.types import ProviderName
from resilient_gen.providers import ADAPTER_FACTORIES, ProviderAdapter

pytestmark = pytest.mark.contract


def test_every_provider_has_exactly_one_factory():
    assert set(ADAPTER_FACTORIES) == set(ProviderName)


@pytest.mark.parametrize("name", list(ProviderName))
def test_factory_builds_a_conforming_adapter(name):
    adapter = ADAPTER_FACTORIES[name](ProviderCredentials(api_key="test-key"))

    assert isinstance(adapter, ProviderAdapter)
    assert adapter.name == name.value
    assert adapter.models
    assert len(set(adapter.models)) == len(adapter.models)
    assert adapter.default_model == adapter.models[0]


@pytest.mark.parametrize("name", list(ProviderName))
def test_factory_refuses_missing_credentials(name):
    with pytest.raises(ProviderNotConfiguredError) as exc_info:
        ADAPTER_FACTORIES[name](ProviderCredentials())

    assert exc_info.value.kind is ErrorKind.AUTHENTICATION_FAILED
    assert exc_info.value.provider == name.value


@pytest.mark.parametrize("name", list(ProviderName))
def test_configured_default_model_leads_the_cascade(name):
    factory = ADAPTER_FACTORIES[name]
    builtin = factory(ProviderCredentials(api_key="test-key")).models
    preferred = builtin[-1]

    adapter = factory(ProviderCredentials(api_key="test-key", default_model=preferred))

    assert adapter.models[0] == preferred
    assert sorted(adapter.models) == sorted(builtin)
