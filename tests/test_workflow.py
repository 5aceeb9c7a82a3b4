import queue

import pytest
from selenium.common.exceptions import TimeoutException

from cedu_assistant.automation import portal
from cedu_assistant.automation.workflow import (
    NAVIGATION_STEPS,
    AutomationDriver,
    LoginOutcome,
    classify_feedback,
)
from cedu_assistant.models import Credentials
from cedu_assistant.services.notifier import UiEvent

from conftest import answer_captchas

CREDENTIALS = Credentials("13800000000", "secret", "ab12")


@pytest.mark.parametrize(
    ("feedback", "url", "expected"),
    [
        ("登录成功", None, LoginOutcome.SUCCESS),
        ("没有用户", None, LoginOutcome.USER_NOT_FOUND),
        ("密码错误", None, LoginOutcome.WRONG_PASSWORD),
        ("验证码错误", None, LoginOutcome.WRONG_CAPTCHA),
        ("", portal.MEMBER_INDEX_URL, LoginOutcome.SUCCESS),
        ("", portal.LOGIN_URL, LoginOutcome.UNKNOWN),
        ("系统繁忙", None, LoginOutcome.UNKNOWN),
    ],
)
def test_classify_feedback(feedback, url, expected):
    assert classify_feedback(feedback, url) is expected


def make_driver(page, notifier, clock, answers, **kwargs):
    credentials = queue.Queue()
    answer_captchas(notifier, credentials.put, answers)
    entered = []
    driver = AutomationDriver(
        page,
        notifier,
        credentials,
        on_course_page=lambda: entered.append(True),
        clock=clock,
        **kwargs,
    )
    return driver, entered


def test_successful_login_runs_navigation_then_hands_off(page, notifier, recorder, clock):
    driver, entered = make_driver(page, notifier, clock, [CREDENTIALS])

    outcome = driver.run()

    assert outcome is LoginOutcome.SUCCESS
    assert entered == [True]
    assert recorder.payloads(UiEvent.CAPTCHA) == ["captcha-png"]
    assert recorder.payloads(UiEvent.SEND_ENABLED) == [False]
    navigation = [call for call in page.calls if call[0] in {"click", "wait_for_url"}]
    assert navigation == [
        ("click", portal.CONTINUE_EDU_MENU),
        ("wait_for_url", portal.STUDENT_CENTER_URL),
        ("click", portal.MINI_PROGRAM_POPUP_CLOSE),
        ("click", portal.MY_STUDY_LINK),
        ("click", portal.START_LEARNING_BUTTON),
        ("click", portal.I_KNOW_BUTTON),
    ]
    jittered = sum(1 for step in NAVIGATION_STEPS if step.jitter)
    assert len(clock.sleeps) == jittered
    assert all(3 <= delay <= 7 for delay in clock.sleeps)


def test_wrong_captcha_loops_back_to_fresh_captcha(page, notifier, recorder, clock):
    page.feedback = "验证码错误"
    driver, entered = make_driver(page, notifier, clock, [CREDENTIALS, None])

    outcome = driver.run()

    assert outcome is None
    assert entered == []
    assert page.count("open_login") == 2
    assert page.count("captcha_base64") == 2
    assert page.count("fill_login_form") == 1
    assert "验证码错误，请重新输入。" in recorder.logs()


def test_submissions_against_an_old_captcha_are_discarded(page, notifier, recorder, clock):
    credentials = queue.Queue()
    early = Credentials("13800000000", "secret", "old1")
    fresh = Credentials("13800000000", "secret", "new2")
    # Sent before any captcha was shown, then twice for the first captcha.
    credentials.put(early)
    answers = [[CREDENTIALS, CREDENTIALS], [fresh]]

    def on_captcha(_image):
        for answer in answers.pop(0):
            credentials.put(answer)

    notifier.subscribe(UiEvent.CAPTCHA, on_captcha)
    page.feedback = "验证码错误"
    driver = AutomationDriver(page, notifier, credentials, on_course_page=lambda: None, clock=clock, max_attempts=2)

    driver.run()

    submitted = [call[1].captcha for call in page.calls if call[0] == "fill_login_form"]
    assert submitted == ["ab12", "new2"]
    assert credentials.empty()


def test_cancel_queued_before_captcha_is_honoured(page, notifier, recorder, clock):
    credentials = queue.Queue()
    credentials.put(CREDENTIALS)
    credentials.put(None)
    driver = AutomationDriver(page, notifier, credentials, on_course_page=lambda: None, clock=clock)

    assert driver.run() is None
    assert page.count("fill_login_form") == 0
    assert recorder.payloads(UiEvent.CAPTCHA) == []


def test_cancelled_wait_returns_without_login(page, notifier, clock):
    driver, entered = make_driver(page, notifier, clock, [None])

    assert driver.run() is None
    assert page.count("fill_login_form") == 0


def test_missing_captcha_aborts_with_restart_message(page, notifier, recorder, clock):
    page.captcha_missing = True
    driver, _ = make_driver(page, notifier, clock, [])

    assert driver.run() is None
    assert recorder.payloads(UiEvent.CAPTCHA) == []
    assert any("请退出程序重新打开" in text for text in recorder.logs())


def test_attempts_are_capped(page, notifier, recorder, clock):
    page.feedback = "密码错误"
    driver, entered = make_driver(page, notifier, clock, [CREDENTIALS] * 3, max_attempts=3)

    assert driver.run() is LoginOutcome.WRONG_PASSWORD
    assert page.count("submit_login") == 3
    assert entered == []
    assert "3次上限" in recorder.logs()[-1]


def test_navigation_failure_skips_hand_off(page, notifier, recorder, clock):
    def wait_for_url(url):
        raise TimeoutException("slow")

    page.wait_for_url = wait_for_url
    driver, entered = make_driver(page, notifier, clock, [CREDENTIALS])

    assert driver.run() is LoginOutcome.SUCCESS
    assert entered == []
    assert any("自动跳转到学习页面失败" in text for text in recorder.logs())
