import httpx
import pytest

from funnel_builder.services.intake import (
    IntakeValidationError,
    ScrapeError,
    create_paste_intake,
    extract_page_text,
    scrape_url,
    validate_scrape_url,
)


@pytest.mark.parametrize(
    "url",
    [
        "ftp://example.com/file",
        "http://localhost:8000/",
        "http://127.0.0.1/admin",
        "http://10.0.0.5/",
        "http://192.168.1.1/",
        "http://169.254.169.254/latest/meta-data",
        "http://printer.local/",
    ],
)
def test_validate_scrape_url_blocks_internal_targets(url):
    with pytest.raises(IntakeValidationError):
        validate_scrape_url(url)


def test_validate_scrape_url_accepts_public_ip():
    validate_scrape_url("https://93.184.216.34/about")


def test_extract_page_text_drops_chrome():
    html = """
    <html><head><title> My Offer </title><style>.x{}</style></head>
    <body><nav>Menu</nav><main><h1>Coaching</h1><p>Grow   your business.</p>
    <script>alert(1)</script></main><footer>Footer</footer></body></html>
    """
    title, text = extract_page_text(html)
    assert title == "My Offer"
    assert text == "Coaching Grow your business."


def test_scrape_url_maps_upstream_status(monkeypatch):
    monkeypatch.setattr("funnel_builder.services.intake.validate_scrape_url", lambda url: None)
    transport = httpx.MockTransport(lambda request: httpx.Response(404, text="missing"))
    with httpx.Client(transport=transport) as client:
        with pytest.raises(ScrapeError) as excinfo:
            scrape_url("https://example.com/missing", client=client)
    assert excinfo.value.status_code == 404


def test_scrape_url_requires_enough_text(monkeypatch):
    monkeypatch.setattr("funnel_builder.services.intake.validate_scrape_url", lambda url: None)
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html><body>tiny</body></html>"))
    with httpx.Client(transport=transport) as client:
        with pytest.raises(IntakeValidationError):
            scrape_url("https://example.com/", client=client)


def test_paste_intake_requires_minimum_length(db_session, project):
    with pytest.raises(IntakeValidationError):
        create_paste_intake(db_session, user_id=project.user_id, project=project, content="too short")

    transcript = create_paste_intake(
        db_session,
        user_id=project.user_id,
        project=project,
        content="We help new coaches land their first ten clients with a simple webinar funnel.",
    )
    assert transcript.transcript_text.startswith("We help")
    assert transcript.metadata_json["word_count"] == 14


ARTICLE = "<html><head><title>Offer</title></head><body><main>" + "We coach service businesses. " * 10 + "</main></body></html>"


def test_scrape_refuses_redirects_to_internal_addresses():
    fetched = []

    def handler(request):
        fetched.append(str(request.url))
        if request.url.host == "93.184.216.34":
            return httpx.Response(302, headers={"Location": "http://169.254.169.254/latest/meta-data/"})
        return httpx.Response(200, text=ARTICLE)

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(IntakeValidationError):
            scrape_url("http://93.184.216.34/", client=client)

    assert fetched == ["http://93.184.216.34/"]


def test_scrape_follows_public_redirects():
    def handler(request):
        if request.url.path == "/old":
            return httpx.Response(301, headers={"Location": "/new"})
        return httpx.Response(200, text=ARTICLE)

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        page = scrape_url("http://93.184.216.34/old", client=client)

    assert page.title == "Offer"
    assert page.text.startswith("We coach service businesses.")


def test_scrape_stops_after_too_many_redirects():
    transport = httpx.MockTransport(lambda request: httpx.Response(302, headers={"Location": "/again"}))
    with httpx.Client(transport=transport) as client:
        with pytest.raises(ScrapeError, match="Too many redirects"):
            scrape_url("http://93.184.216.34/start", client=client)
