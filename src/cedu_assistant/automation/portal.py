from __future__ import annotations

import threading
from typing import Any

from selenium.common.exceptions import NoSuchElementException, TimeoutException, WebDriverException
from selenium.webdriver.common.by import By
from selenium.webdriver.remote.webdriver import WebDriver
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from cedu_assistant.models import Credentials

LOGIN_URL = "http://www.sczjrcfw.cn/member/index/login?url="
FEEDBACK_URL = "http://www.sczjrcfw.cn/member/MemberLogin"
MEMBER_INDEX_URL = "http://www.sczjrcfw.cn/member/index"
STUDENT_CENTER_URL = "https://scbdystudent.etledu.com/PersonalCenter/StudentIndex?type=1"

CAPTCHA_IMAGE = 'img[alt="captcha"]'
LOGIN_PHONE_INPUT = "#login_user"
LOGIN_PASSWORD_INPUT = "#login_pass"
LOGIN_CAPTCHA_INPUT = "#captcha"
LOGIN_SUBMIT_BUTTON = "button.btn.btn-primary"
LOGIN_FEEDBACK_TEXT = "p.success"
LOGIN_JUMP_LINK = "#href"

CONTINUE_EDU_MENU = "#MENU_CONTINUE_EDU"
MINI_PROGRAM_POPUP_CLOSE = ".layui-layer-setwin .layui-layer-ico.layui-layer-close1"
MY_STUDY_LINK = 'a[target="/PersonalCenter/MyTrain"]'
START_LEARNING_BUTTON = "div.layui-btn.layui-btn-sm.layui-btn-normal.blue"
I_KNOW_BUTTON = "div.iknow"

COURSE_LIST_ITEM = ".video_list .kecheng_li"
FACE_QR_CODE_IMAGE = "#faceQRCode"
FACE_QR_CODE_RELOAD = "#btnReloadQRCode"
FACE_QR_CODE_TIMER = ".heartCheckTimer"

PNG_DATA_URL_PREFIX = "data:image/png;base64,"

# Raw attribute/text read of every course item; status is derived in Python.
COURSE_ROWS_SCRIPT = """
const items = Array.from(document.querySelectorAll(arguments[0]));
return items.map(li => {
    const label = li.querySelector('.bofang_list_name_wanchengdu');
    const title = li.querySelector('.bofang_list_name_title');
    return {
        resourceid: li.getAttribute('data-resourceid'),
        totalcount: li.getAttribute('data-totalcount'),
        secondslearned: li.getAttribute('data-secondslearned'),
        label: label ? label.textContent : '',
        name: title ? title.textContent : ''
    };
});
"""


class PortalStructureError(RuntimeError):
    """Raised when an element the login flow depends on never shows up."""


class PortalUnavailableError(RuntimeError):
    """Raised when an element is briefly missing between page updates."""


TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (WebDriverException, PortalUnavailableError)


def strip_png_data_url(source: str | None) -> str:
    if not source:
        return ""
    if source.startswith(PNG_DATA_URL_PREFIX):
        return source[len(PNG_DATA_URL_PREFIX):]
    return source


class PortalPage:
    """All reads and clicks against the one automated browser tab.

    Every call holds a re-entrant lock so the poller, the guardian, the
    countdown watcher and window commands never interleave on the driver.
    """

    def __init__(self, driver: WebDriver, *, selector_timeout: float = 10.0, navigation_timeout: float = 30.0) -> None:
        self._driver = driver
        self._selector_timeout = selector_timeout
        self._navigation_timeout = navigation_timeout
        self._lock = threading.RLock()

    @property
    def current_url(self) -> str:
        with self._lock:
            return self._driver.current_url or ""

    # ------------------------------------------------------------------
    # Login page
    # ------------------------------------------------------------------
    def open_login(self) -> None:
        with self._lock:
            self._driver.get(LOGIN_URL)
            WebDriverWait(self._driver, self._navigation_timeout).until(
                lambda driver: driver.execute_script("return document.readyState") == "complete"
            )

    def captcha_base64(self) -> str:
        with self._lock:
            try:
                element = WebDriverWait(self._driver, self._selector_timeout).until(
                    EC.visibility_of_element_located((By.CSS_SELECTOR, CAPTCHA_IMAGE))
                )
                return element.screenshot_as_base64
            except TimeoutException as exc:
                raise PortalStructureError("Captcha image not found on the login page.") from exc

    def fill_login_form(self, credentials: Credentials) -> None:
        with self._lock:
            for selector, value in (
                (LOGIN_PHONE_INPUT, credentials.phone),
                (LOGIN_PASSWORD_INPUT, credentials.password),
                (LOGIN_CAPTCHA_INPUT, credentials.captcha),
            ):
                field = self._driver.find_element(By.CSS_SELECTOR, selector)
                field.clear()
                field.send_keys(value)

    def submit_login(self) -> None:
        self.click(LOGIN_SUBMIT_BUTTON)

    def read_login_feedback(self) -> str:
        """Wait for the feedback page and return its message ("" if none)."""
        with self._lock:
            try:
                WebDriverWait(self._driver, self._navigation_timeout).until(EC.url_to_be(FEEDBACK_URL))
            except TimeoutException:
                return ""

            try:
                feedback = self._driver.find_element(By.CSS_SELECTOR, LOGIN_FEEDBACK_TEXT).text.strip()
            except NoSuchElementException:
                feedback = ""

            jump_links = self._driver.find_elements(By.CSS_SELECTOR, LOGIN_JUMP_LINK)
            if jump_links:
                try:
                    jump_links[0].click()
                except WebDriverException:
                    pass
            return feedback

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------
    def click(self, selector: str) -> None:
        with self._lock:
            element = WebDriverWait(self._driver, self._navigation_timeout).until(
                EC.element_to_be_clickable((By.CSS_SELECTOR, selector))
            )
            element.click()

    def wait_for_url(self, url: str) -> None:
        with self._lock:
            WebDriverWait(self._driver, self._navigation_timeout).until(EC.url_to_be(url))

    # ------------------------------------------------------------------
    # Course list
    # ------------------------------------------------------------------
    def course_list_present(self, timeout: float | None = None) -> bool:
        with self._lock:
            try:
                WebDriverWait(self._driver, self._selector_timeout if timeout is None else timeout).until(
                    EC.presence_of_element_located((By.CSS_SELECTOR, COURSE_LIST_ITEM))
                )
                return True
            except TimeoutException:
                return False

    def course_rows(self) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._driver.execute_script(COURSE_ROWS_SCRIPT, COURSE_LIST_ITEM)
        return list(rows or [])

    # ------------------------------------------------------------------
    # Face verification challenge
    # ------------------------------------------------------------------
    def is_qr_code_visible(self) -> bool:
        with self._lock:
            elements = self._driver.find_elements(By.CSS_SELECTOR, FACE_QR_CODE_IMAGE)
            return bool(elements) and elements[0].is_displayed()

    def qr_code_base64(self) -> str:
        with self._lock:
            elements = self._driver.find_elements(By.CSS_SELECTOR, FACE_QR_CODE_IMAGE)
            if not elements:
                raise PortalUnavailableError("Face verification QR code is not on the page.")
            return strip_png_data_url(elements[0].get_attribute("src"))

    def countdown_text(self) -> str:
        with self._lock:
            elements = self._driver.find_elements(By.CSS_SELECTOR, FACE_QR_CODE_TIMER)
            if not elements:
                raise PortalUnavailableError("Face verification countdown is not on the page.")
            text = elements[0].get_attribute("textContent") or elements[0].text
            return text.strip()

    def reload_qr_code(self) -> None:
        with self._lock:
            self._driver.find_element(By.CSS_SELECTOR, FACE_QR_CODE_RELOAD).click()

    def close(self) -> None:
        with self._lock:
            try:
                self._driver.quit()
            except WebDriverException:  # pragma: no cover - best effort cleanup
                pass
