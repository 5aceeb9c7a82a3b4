import pytest

from cedu_assistant.automation.chrome import ChromeAutomationError
from cedu_assistant.automation.workflow import LoginOutcome
from cedu_assistant.config import Settings, UserSettingsStore
from cedu_assistant.models import Credentials, UserConfig
from cedu_assistant.services.notifier import UiEvent
from cedu_assistant.services.session import AutomationSession, validate_credentials

from conftest import answer_captchas, course_row

FAST_SETTINGS = Settings(
    poll_interval=60,
    jitter_min=0,
    jitter_max=0,
    guardian_error_delay=0,
    guardian_restart_delay=0,
)


@pytest.fixture
def store(tmp_path):
    return UserSettingsStore(tmp_path)


@pytest.fixture
def session(notifier, store, clock, page):
    session = AutomationSession(
        notifier,
        store,
        settings=FAST_SETTINGS,
        clock=clock,
        page_factory=lambda config: page,
    )
    yield session
    session.shutdown()


@pytest.mark.parametrize(
    ("phone", "password", "fields"),
    [
        ("13800000000", "x", set()),
        ("23800000000", "x", {"phone"}),
        ("1380000000", "x", {"phone"}),
        ("13800000000", "  ", {"password"}),
        ("", "", {"phone", "password"}),
    ],
)
def test_validate_credentials(phone, password, fields):
    assert set(validate_credentials(Credentials(phone, password, ""))) == fields


def test_submit_credentials_rejects_invalid_input(session, store):
    errors = session.submit_credentials(Credentials("123", "", "ab12"))

    assert set(errors) == {"phone", "password"}
    assert store.load_user_config() == UserConfig()


def test_submit_credentials_persists_phone_and_password(session, store):
    store.save_user_config(UserConfig(browser_executable_path="/opt/chrome"))

    assert session.submit_credentials(Credentials(" 13800000000 ", "pw", "ab12")) == {}

    assert store.load_user_config() == UserConfig("/opt/chrome", "13800000000", "pw")


def test_refresh_before_course_page_fails(session):
    result = session.refresh_course_list()

    assert not result
    assert result.message


def test_run_automation_end_to_end(session, page, notifier, recorder):
    page.rows = [
        course_row("a", 600, 600),
        course_row("b", 600, 45),
        course_row("c", 600, 0),
    ]
    answer_captchas(notifier, session.submit_credentials, [Credentials("13800000000", "pw", "ab12")])

    outcome = session.run_automation(UserConfig(browser_executable_path="/opt/chrome"))

    assert outcome is LoginOutcome.SUCCESS
    assert recorder.payloads(UiEvent.SEND_ENABLED) == [True, False]
    assert recorder.payloads(UiEvent.REFRESH_ENABLED) == [True]
    (course_list,) = recorder.payloads(UiEvent.COURSE_LIST)
    assert course_list.current_watched_seconds == 45
    assert session.state.active_course_id == "b"
    assert session.poller.is_running
    assert session.guardian.is_running

    session.shutdown()
    assert page.closed
    assert not session.poller.is_running
    assert not session.guardian.is_running


def test_refresh_with_everything_complete_suspends_tracking(session, page, notifier, recorder):
    page.rows = [course_row("a", 600, 600)]
    answer_captchas(notifier, session.submit_credentials, [Credentials("13800000000", "pw", "ab12")])
    session.run_automation(UserConfig())

    assert session.state.active_course_id is None
    assert not session.poller.is_running


def test_refresh_reports_empty_list(session, page, notifier, recorder):
    page.list_present = False
    answer_captchas(notifier, session.submit_credentials, [Credentials("13800000000", "pw", "ab12")])
    session.run_automation(UserConfig())

    result = session.refresh_course_list()
    assert not result
    assert any("课件列表更新失败" in text for text in recorder.logs())


def test_browser_launch_failure_is_reported(notifier, store, recorder, clock):
    def failing_factory(config):
        raise ChromeAutomationError("no chrome")

    session = AutomationSession(notifier, store, settings=FAST_SETTINGS, clock=clock, page_factory=failing_factory)

    assert session.run_automation(UserConfig()) is None
    assert "浏览器启动失败，请检查路径！" in recorder.logs()
    assert not session.is_started
