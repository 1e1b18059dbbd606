import base64
from types import SimpleNamespace

import httpx
import pytest

from funnel_builder.llm.client import DATA_URL_PREFIX, LLMClient, LLMGenerationError
from funnel_builder.services import media_storage as media_storage_module
from funnel_builder.services import slide_images
from funnel_builder.services.media_storage import MediaStorage, MediaStorageConfigurationError


class FakeImageLLM:
    def __init__(self, results):
        self.results = list(results)
        self.calls = 0

    def generate_image(self, prompt, *, size="1792x1024", timeout=None):
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class FakeS3Client:
    def __init__(self):
        self.objects = []

    def put_object(self, **kwargs):
        self.objects.append(kwargs)


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr(slide_images.time, "sleep", lambda _seconds: None)


@pytest.fixture
def storage(monkeypatch):
    monkeypatch.setattr(media_storage_module.settings, "MEDIA_STORAGE_BUCKET", "funnel-media")
    monkeypatch.setattr(media_storage_module.settings, "MEDIA_STORAGE_ENDPOINT", "https://s3.example.test")
    monkeypatch.setattr(media_storage_module.settings, "MEDIA_STORAGE_ACCESS_KEY", "access")
    monkeypatch.setattr(media_storage_module.settings, "MEDIA_STORAGE_SECRET_KEY", "secret")
    monkeypatch.setattr(media_storage_module.settings, "MEDIA_STORAGE_PREFIX", "test")
    monkeypatch.setattr(media_storage_module.settings, "MEDIA_STORAGE_PUBLIC_BASE_URL", "https://cdn.example.test/")
    store = MediaStorage()
    store.client = FakeS3Client()
    return store


def test_media_storage_requires_bucket(monkeypatch):
    monkeypatch.setattr(media_storage_module.settings, "MEDIA_STORAGE_BUCKET", None)

    with pytest.raises(MediaStorageConfigurationError, match="MEDIA_STORAGE_BUCKET"):
        MediaStorage()


def test_media_storage_uploads_under_prefix(storage):
    key = storage.build_key("/presentations/p-1/slide-1.png")
    url = storage.upload_bytes(key=key, data=b"png", content_type="image/png")

    assert key == "test/presentations/p-1/slide-1.png"
    assert url == "https://cdn.example.test/test/presentations/p-1/slide-1.png"
    stored = storage.client.objects[0]
    assert stored["Bucket"] == "funnel-media"
    assert stored["ContentType"] == "image/png"
    assert stored["CacheControl"].startswith("public")


def test_image_url_retries_then_succeeds(no_sleep):
    llm = FakeImageLLM([RuntimeError("busy"), "https://images.example.test/a.png"])

    assert slide_images.generate_slide_image_url("a chart", llm=llm) == "https://images.example.test/a.png"
    assert llm.calls == 2


def test_image_url_gives_up_after_retries(no_sleep):
    llm = FakeImageLLM([RuntimeError("busy")] * 3)

    assert slide_images.generate_slide_image_url("a chart", llm=llm) is None
    assert llm.calls == 3


def test_empty_image_url_is_not_retried(no_sleep):
    llm = FakeImageLLM(["", "https://images.example.test/late.png"])

    assert slide_images.generate_slide_image_url("a chart", llm=llm) is None
    assert llm.calls == 1


def test_generated_image_is_copied_into_storage(no_sleep, storage):
    llm = FakeImageLLM(["https://images.example.test/a.png"])
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})
    )

    with httpx.Client(transport=transport) as client:
        url = slide_images.generate_and_store_slide_image(
            presentation_id="pres-1",
            slide_number=4,
            prompt="a chart",
            llm=llm,
            storage=storage,
            http_client=client,
        )

    assert url.startswith("https://cdn.example.test/test/presentations/pres-1/slide-4-")
    assert url.endswith(".png")
    assert storage.client.objects[0]["Body"] == b"\x89PNG"


def test_failed_download_returns_none(no_sleep, storage):
    llm = FakeImageLLM(["https://images.example.test/missing.png"])
    transport = httpx.MockTransport(lambda request: httpx.Response(404))

    with httpx.Client(transport=transport) as client:
        url = slide_images.generate_and_store_slide_image(
            presentation_id="pres-1",
            slide_number=1,
            prompt="a chart",
            llm=llm,
            storage=storage,
            http_client=client,
        )

    assert url is None
    assert storage.client.objects == []


class FakeImages:
    def __init__(self, *items):
        self.items = list(items)
        self.requests = []

    def generate(self, **kwargs):
        self.requests.append(kwargs)
        return SimpleNamespace(data=self.items)


def _image_client(*items):
    client = LLMClient(default_model="gpt-4o")
    client._openai_client = SimpleNamespace(images=FakeImages(*items))
    return client


def test_generate_image_prefers_the_url():
    client = _image_client(SimpleNamespace(url="https://images.example.test/a.png", b64_json="aGVsbG8="))

    assert client.generate_image("a chart") == "https://images.example.test/a.png"


def test_generate_image_returns_inline_base64():
    client = _image_client(SimpleNamespace(url=None, b64_json="aGVsbG8="))

    assert client.generate_image("a chart") == f"{DATA_URL_PREFIX}aGVsbG8="


def test_generate_image_without_url_or_bytes_raises():
    client = _image_client(SimpleNamespace(url=None, b64_json=None))

    with pytest.raises(LLMGenerationError, match="no image"):
        client.generate_image("a chart")


def test_inline_image_is_stored_without_download(no_sleep, storage):
    llm = FakeImageLLM([DATA_URL_PREFIX + base64.b64encode(b"\x89PNG").decode("ascii")])
    requests = []
    transport = httpx.MockTransport(lambda request: requests.append(request) or httpx.Response(500))

    with httpx.Client(transport=transport) as client:
        url = slide_images.generate_and_store_slide_image(
            presentation_id="pres-1",
            slide_number=2,
            prompt="a chart",
            llm=llm,
            storage=storage,
            http_client=client,
        )

    assert url.startswith("https://cdn.example.test/test/presentations/pres-1/slide-2-")
    assert storage.client.objects[0]["Body"] == b"\x89PNG"
    assert storage.client.objects[0]["ContentType"] == "image/png"
    assert requests == []
