import pytest

from gickinstaller.errors import InstallerError, ValidationError
from gickinstaller.services import validation
from gickinstaller.services.validation import ValidationService, normalize_base_path


class DummyLogger:
    def __init__(self):
        self.warnings = []

    def warning(self, message, *args, **_kwargs):
        self.warnings.append(message % args)

    def debug(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, ""),
        ("", ""),
        ("/", ""),
        ("  //  ", ""),
        ("design-tool", "/design-tool"),
        ("/design-tool/", "/design-tool"),
        ("//design-tool//", "/design-tool"),
        ("tools/designer", "/tools/designer"),
    ],
)
def test_normalize_base_path(raw, expected):
    assert normalize_base_path(raw) == expected


def test_normalize_base_path_is_idempotent():
    once = normalize_base_path("design-tool/")
    assert normalize_base_path(once) == once


@pytest.mark.parametrize("raw", ["/../etc", "/a b", "/tool;rm", "/./x"])
def test_normalize_base_path_rejects_unsafe_values(raw):
    with pytest.raises(ValidationError):
        normalize_base_path(raw)


def test_validate_domain_rejects_scheme_and_dotless_names():
    assert validation.validate_domain("Design.Example.com.") == "design.example.com"
    assert validation.validate_domain("localhost") == "localhost"

    with pytest.raises(ValidationError, match="without a scheme"):
        validation.validate_domain("https://example.com")
    with pytest.raises(ValidationError, match="at least one dot"):
        validation.validate_domain("intranet")


def test_validate_password_and_port():
    assert validation.validate_password("12345678") == "12345678"
    with pytest.raises(ValidationError, match="at least 8"):
        validation.validate_password("short", "Admin password")

    assert validation.validate_port("3306") == 3306
    with pytest.raises(ValidationError):
        validation.validate_port("70000")
    with pytest.raises(ValidationError):
        validation.validate_port("abc")


def test_validate_node_version_accepts_v_prefix():
    assert validation.validate_node_version("v21") == "21"
    with pytest.raises(ValidationError):
        validation.validate_node_version("21.1")


def test_require_reports_field_name():
    with pytest.raises(InstallerError, match="`domain`"):
        validation.require("  ", "domain")
    assert validation.require("x", "domain") == "x"


def test_parse_os_release_strips_quotes():
    parsed = validation.parse_os_release('# comment\nID="ubuntu"\nVERSION_ID="22.04"\n')

    assert parsed == {"ID": "ubuntu", "VERSION_ID": "22.04"}


def test_check_os_support_rejects_old_release():
    service = ValidationService()

    with pytest.raises(InstallerError, match="Unsupported operating system"):
        service.check_os_support({"ID": "ubuntu", "VERSION_ID": "18.04"}, DummyLogger(), DummyConsole())

    assert service.check_os_support({"ID": "debian", "VERSION_ID": "12"}, DummyLogger(), DummyConsole()) == "debian"


def test_check_os_support_warns_for_experimental_family():
    logger = DummyLogger()

    assert ValidationService().check_os_support({"ID": "centos", "VERSION_ID": "9"}, logger, DummyConsole()) == "centos"
    assert logger.warnings


def test_check_os_support_rejects_unlisted_rhel_rebuilds():
    with pytest.raises(InstallerError, match="rocky"):
        ValidationService().check_os_support({"ID": "rocky", "VERSION_ID": "9"}, DummyLogger(), DummyConsole())


class FakeRequestsModule:
    class RequestException(Exception):
        pass

    def __init__(self, fail=False):
        self.fail = fail

    def head(self, *_args, **_kwargs):
        if self.fail:
            raise self.RequestException("offline")

        class Response:
            status_code = 200

            def close(self):
                return None

        return Response()


def test_is_reachable_handles_request_errors():
    assert ValidationService(requests_module=FakeRequestsModule()).is_reachable("https://x", DummyLogger())
    assert not ValidationService(requests_module=FakeRequestsModule(fail=True)).is_reachable(
        "https://x", DummyLogger()
    )
