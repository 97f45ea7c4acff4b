from auth.navigator import BrowserNavigator, RequestNavigator
from auth.urls import append_query_params, build_resource_url, query_params_from_url


def test_browser_navigator_opens_url() -> None:
    opened: list[str] = []
    navigator = BrowserNavigator(open_url=opened.append)

    navigator.redirect("https://kp.example.com/oauth2/authorize?state=s")
    navigator.set_current_url("http://127.0.0.1:8000/callback?code=c&state=s")

    assert opened == ["https://kp.example.com/oauth2/authorize?state=s"]
    assert query_params_from_url(navigator.current_url()) == {"code": "c", "state": "s"}


def test_request_navigator_bind_resets_redirect() -> None:
    navigator = RequestNavigator("http://testserver/login")
    navigator.redirect("https://kp.example.com/oauth2/authorize")

    navigator.bind("http://testserver/callback")

    assert navigator.redirect_url is None
    assert navigator.current_url() == "http://testserver/callback"


def test_append_query_params_keeps_existing() -> None:
    url = append_query_params("https://example.com/cb?keep=1", {"code": "abc"})

    assert query_params_from_url(url) == {"keep": "1", "code": "abc"}


def test_build_resource_url_joins_paths() -> None:
    assert build_resource_url("https://kp.example.com/fhir/", "/Patient/1") == (
        "https://kp.example.com/fhir/Patient/1"
    )


def test_build_resource_url_rejects_other_hosts() -> None:
    for path in ("https://evil.example.com/Patient", "//evil.example.com/Patient"):
        try:
            build_resource_url("https://kp.example.com/fhir", path)
        except ValueError:
            continue
        raise AssertionError(f"{path} should have been rejected")
