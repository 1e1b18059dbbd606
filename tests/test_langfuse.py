import pytest

from funnel_builder.observability import langfuse as langfuse_module


@pytest.fixture(autouse=True)
def reset_langfuse_state() -> None:
    langfuse_module._langfuse_client = None
    langfuse_module._langfuse_initialized = False
    yield
    langfuse_module._langfuse_client = None
    langfuse_module._langfuse_initialized = False


def _configure_enabled_langfuse(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_ENABLED", True)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_REQUIRED", False)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_PUBLIC_KEY", "pk-test")
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_SECRET_KEY", "sk-test")
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_HOST", "https://cloud.langfuse.com")
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_ENVIRONMENT", "test")
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_RELEASE", "test-release")
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_SAMPLE_RATE", 1.0)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_TIMEOUT_SECONDS", 20)


def test_initialize_langfuse_raises_when_required_but_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_ENABLED", False)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_REQUIRED", True)

    with pytest.raises(langfuse_module.LangfuseConfigError, match="LANGFUSE_REQUIRED is true"):
        langfuse_module.initialize_langfuse()


def test_initialize_langfuse_requires_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_enabled_langfuse(monkeypatch)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_SECRET_KEY", None)

    with pytest.raises(langfuse_module.LangfuseConfigError, match="LANGFUSE_SECRET_KEY"):
        langfuse_module.initialize_langfuse()
    assert langfuse_module._langfuse_client is None


def test_initialize_langfuse_builds_client_once(monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_enabled_langfuse(monkeypatch)
    created = []

    class FakeLangfuse:
        def __init__(self, **kwargs):
            created.append(kwargs)

        def shutdown(self) -> None:
            created.append("shutdown")

    monkeypatch.setattr(langfuse_module, "Langfuse", FakeLangfuse)

    langfuse_module.initialize_langfuse()
    langfuse_module.initialize_langfuse()

    assert len(created) == 1
    assert created[0]["environment"] == "test"
    assert created[0]["release"] == "test-release"

    langfuse_module.shutdown_langfuse()
    assert created[-1] == "shutdown"
    assert langfuse_module._langfuse_initialized is False


def test_span_is_noop_when_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_ENABLED", False)
    monkeypatch.setattr(langfuse_module.settings, "LANGFUSE_REQUIRED", False)

    with langfuse_module.start_langfuse_span(name="noop") as span:
        assert span is None
    with langfuse_module.start_langfuse_generation(name="noop", model="m") as generation:
        assert generation is None


def test_span_updates_trace_from_bound_context(monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_enabled_langfuse(monkeypatch)
    updates = []

    class FakeSpan:
        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def update(self, **kwargs) -> None:
            updates.append(("span", kwargs))

    class FakeLangfuse:
        def __init__(self, **_kwargs):
            pass

        def start_as_current_span(self, **_kwargs):
            return FakeSpan()

        def update_current_trace(self, **kwargs) -> None:
            updates.append(("trace", kwargs))

    monkeypatch.setattr(langfuse_module, "Langfuse", FakeLangfuse)

    trace = langfuse_module.TraceContext(name="funnel_chat", user_id="user-1", project_id="p-1", tags=["offer"])
    with langfuse_module.bind_trace_context(trace):
        with langfuse_module.start_langfuse_span(name="step", metadata={"step": 2}):
            pass

    kind, payload = updates[0]
    assert kind == "trace"
    assert payload["name"] == "funnel_chat"
    assert payload["user_id"] == "user-1"
    assert payload["session_id"] == "p-1"
    assert payload["metadata"] == {"step": 2, "project_id": "p-1"}
    assert payload["tags"] == ["offer"]
    assert langfuse_module._current_trace.get() is None
