from __future__ import annotations

import base64
import binascii
import io
import threading
from datetime import datetime, timedelta
from tkinter import StringVar
from typing import Any, Callable

import customtkinter as ctk
from customtkinter import filedialog
from PIL import Image, UnidentifiedImageError

from cedu_assistant.config.settings import Settings
from cedu_assistant.models import CourseListSnapshot, Credentials, UserConfig
from cedu_assistant.services.notifier import (
    QR_SUCCESS_SENTINEL,
    CourseListUpdate,
    LogMessage,
    Notifier,
    ProgressUpdate,
    UiEvent,
)
from cedu_assistant.services.session import AutomationSession
from cedu_assistant.ui.theme import (
    ACCENT,
    ACCENT_HOVER,
    APP_BG,
    COURSE_STATUS_COLORS,
    DANGER,
    DANGER_HOVER,
    ERROR,
    LOG_TONE_COLORS,
    PANEL_BG,
    PANEL_BORDER,
    SUCCESS,
    TEXT,
    TEXT_MUTED,
)
from cedu_assistant.utils.time import countdown_seconds, format_clock_time, format_duration

LOG_LINE_LIMIT = 100
CAPTCHA_SIZE = (120, 40)
QR_SIZE = (220, 220)


def decode_base64_image(data: str | None) -> Image.Image | None:
    if not data:
        return None
    try:
        raw = base64.b64decode(data)
        with Image.open(io.BytesIO(raw)) as img:
            return img.convert("RGBA")
    except (binascii.Error, UnidentifiedImageError, OSError, ValueError):
        return None


class StudyAssistantApp:
    """Desktop window: settings/login form, log, course list and QR panel."""

    def __init__(self, session: AutomationSession, notifier: Notifier, settings: Settings) -> None:
        self._session = session
        self._notifier = notifier

        ctk.set_appearance_mode("light")

        self._root = ctk.CTk()
        self._root.title(settings.app_name)
        self._root.geometry("1280x760")
        self._root.minsize(1080, 640)
        self._root.configure(fg_color=APP_BG)
        self._root.grid_rowconfigure(0, weight=1)
        self._root.grid_columnconfigure(0, weight=2)
        self._root.grid_columnconfigure(1, weight=3)

        self._browser_path_var = StringVar()
        self._phone_var = StringVar()
        self._password_var = StringVar()
        self._captcha_var = StringVar()

        self._captcha_image: ctk.CTkImage | None = None
        self._qr_image: ctk.CTkImage | None = None
        self._qr_success = False
        self._last_watched_seconds = 0

        self._build_form_panel()
        self._build_progress_panel()
        self._subscribe()
        self._load_config()

        self._root.protocol("WM_DELETE_WINDOW", self._quit)

    def run(self) -> None:
        self._root.mainloop()

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------
    def _panel(self, column: int) -> ctk.CTkFrame:
        panel = ctk.CTkFrame(
            self._root,
            fg_color=PANEL_BG,
            border_color=PANEL_BORDER,
            border_width=1,
            corner_radius=12,
        )
        panel.grid(row=0, column=column, sticky="nsew", padx=12, pady=12)
        panel.grid_columnconfigure(0, weight=1)
        return panel

    def _build_form_panel(self) -> None:
        panel = self._panel(0)
        panel.grid_rowconfigure(9, weight=1)

        ctk.CTkLabel(
            panel,
            text="登录信息",
            font=ctk.CTkFont(size=20, weight="bold"),
            text_color=TEXT,
        ).grid(row=0, column=0, sticky="w", padx=20, pady=(18, 8))

        path_row = ctk.CTkFrame(panel, fg_color="transparent")
        path_row.grid(row=1, column=0, sticky="ew", padx=20, pady=4)
        path_row.grid_columnconfigure(0, weight=1)
        ctk.CTkEntry(
            path_row,
            textvariable=self._browser_path_var,
            placeholder_text="Chrome 浏览器路径（chrome.exe）",
        ).grid(row=0, column=0, sticky="ew")
        ctk.CTkButton(path_row, text="浏览", width=64, command=self._browse_browser).grid(
            row=0, column=1, padx=(8, 0)
        )

        self._start_button = ctk.CTkButton(
            panel,
            text="保存并启动",
            fg_color=ACCENT,
            hover_color=ACCENT_HOVER,
            command=self._start,
        )
        self._start_button.grid(row=2, column=0, sticky="ew", padx=20, pady=(4, 12))

        ctk.CTkEntry(panel, textvariable=self._phone_var, placeholder_text="注册手机号").grid(
            row=3, column=0, sticky="ew", padx=20, pady=(4, 0)
        )
        self._phone_error = ctk.CTkLabel(panel, text="", text_color=ERROR, height=16)
        self._phone_error.grid(row=4, column=0, sticky="w", padx=20)

        ctk.CTkEntry(panel, textvariable=self._password_var, placeholder_text="密码", show="*").grid(
            row=5, column=0, sticky="ew", padx=20, pady=(4, 0)
        )
        self._password_error = ctk.CTkLabel(panel, text="", text_color=ERROR, height=16)
        self._password_error.grid(row=6, column=0, sticky="w", padx=20)

        captcha_row = ctk.CTkFrame(panel, fg_color="transparent")
        captcha_row.grid(row=7, column=0, sticky="ew", padx=20, pady=4)
        captcha_row.grid_columnconfigure(0, weight=1)
        ctk.CTkEntry(captcha_row, textvariable=self._captcha_var, placeholder_text="图形验证码").grid(
            row=0, column=0, sticky="ew"
        )
        self._captcha_label = ctk.CTkLabel(captcha_row, text="", width=CAPTCHA_SIZE[0])
        self._captcha_label.grid(row=0, column=1, padx=(8, 0))

        self._send_button = ctk.CTkButton(
            panel,
            text="发送",
            fg_color=ACCENT,
            hover_color=ACCENT_HOVER,
            state="disabled",
            command=self._send_credentials,
        )
        self._send_button.grid(row=8, column=0, sticky="ew", padx=20, pady=(4, 12))

        self._log_box = ctk.CTkTextbox(panel, wrap="word", state="disabled")
        self._log_box.grid(row=9, column=0, sticky="nsew", padx=20, pady=(0, 12))
        for tone, color in LOG_TONE_COLORS.items():
            self._log_box.tag_config(tone, foreground=color)

        ctk.CTkButton(
            panel,
            text="退出",
            fg_color=DANGER,
            hover_color=DANGER_HOVER,
            command=self._quit,
        ).grid(row=10, column=0, sticky="ew", padx=20, pady=(0, 18))

    def _build_progress_panel(self) -> None:
        panel = self._panel(1)
        panel.grid_rowconfigure(2, weight=1)

        header = ctk.CTkFrame(panel, fg_color="transparent")
        header.grid(row=0, column=0, sticky="ew", padx=20, pady=(18, 8))
        header.grid_columnconfigure(0, weight=1)
        ctk.CTkLabel(
            header,
            text="课件列表",
            font=ctk.CTkFont(size=20, weight="bold"),
            text_color=TEXT,
        ).grid(row=0, column=0, sticky="w")
        self._refresh_button = ctk.CTkButton(
            header,
            text="↻ 刷新",
            width=80,
            state="disabled",
            command=self._refresh_course_list,
        )
        self._refresh_button.grid(row=0, column=1)

        stats = ctk.CTkFrame(panel, fg_color="transparent")
        stats.grid(row=1, column=0, sticky="ew", padx=20)
        self._stat_labels: dict[str, ctk.CTkLabel] = {}
        stat_titles = (
            ("total_count", "课件总数"),
            ("finished_count", "已完成课件"),
            ("total_duration", "课件总时长"),
            ("remain_duration", "剩余时长"),
            ("current_total", "本节课总时长"),
            ("current_watched", "本节课已观看"),
            ("finish_time", "本节课预计完成"),
        )
        for index, (key, title) in enumerate(stat_titles):
            row, column = divmod(index, 4)
            cell = ctk.CTkFrame(stats, fg_color="transparent")
            cell.grid(row=row, column=column, sticky="w", padx=(0, 24), pady=4)
            ctk.CTkLabel(cell, text=title, text_color=TEXT_MUTED).grid(row=0, column=0, sticky="w")
            value = ctk.CTkLabel(cell, text="--", text_color=TEXT, font=ctk.CTkFont(size=15, weight="bold"))
            value.grid(row=1, column=0, sticky="w")
            self._stat_labels[key] = value

        body = ctk.CTkFrame(panel, fg_color="transparent")
        body.grid(row=2, column=0, sticky="nsew", padx=20, pady=(8, 18))
        body.grid_rowconfigure(0, weight=1)
        body.grid_columnconfigure(0, weight=1)

        self._course_list_frame = ctk.CTkScrollableFrame(body, fg_color=PANEL_BG)
        self._course_list_frame.grid(row=0, column=0, sticky="nsew")
        self._course_list_frame.grid_columnconfigure(1, weight=1)

        qr_panel = ctk.CTkFrame(body, fg_color="transparent")
        qr_panel.grid(row=0, column=1, sticky="n", padx=(16, 0))
        ctk.CTkLabel(qr_panel, text="人脸识别二维码", text_color=TEXT_MUTED).grid(row=0, column=0)
        self._qr_label = ctk.CTkLabel(qr_panel, text="", width=QR_SIZE[0], height=QR_SIZE[1])
        self._qr_label.grid(row=1, column=0, pady=8)
        self._qr_timer_label = ctk.CTkLabel(qr_panel, text="等待倒计时...", text_color=TEXT)
        self._qr_timer_label.grid(row=2, column=0)

    # ------------------------------------------------------------------
    # Push channel
    # ------------------------------------------------------------------
    def _subscribe(self) -> None:
        handlers: dict[UiEvent, Callable[[Any], None]] = {
            UiEvent.LOG: self._append_log,
            UiEvent.CAPTCHA: self._show_captcha,
            UiEvent.COURSE_LIST: self._render_course_list,
            UiEvent.CURRENT_PROGRESS: self._update_progress,
            UiEvent.QR_IMAGE: self._show_qr_code,
            UiEvent.QR_TIMER: self._update_qr_timer,
            UiEvent.SEND_ENABLED: lambda enabled: self._set_enabled(self._send_button, enabled),
            UiEvent.REFRESH_ENABLED: lambda enabled: self._set_enabled(self._refresh_button, enabled),
            UiEvent.WINDOW_SHOW: lambda _payload: self._show_window(),
            UiEvent.WINDOW_HIDE: lambda _payload: self._hide_window(),
        }
        for event, handler in handlers.items():
            self._notifier.subscribe(event, self._on_ui_thread(handler))

    def _on_ui_thread(self, handler: Callable[[Any], None]) -> Callable[[Any], None]:
        def dispatch(payload: Any) -> None:
            try:
                self._root.after(0, lambda: handler(payload))
            except RuntimeError:  # pragma: no cover - window already destroyed
                pass

        return dispatch

    def _append_log(self, message: LogMessage) -> None:
        self._log_box.configure(state="normal")
        line_count = int(self._log_box.index("end-1c").split(".")[0])
        while line_count > LOG_LINE_LIMIT:
            self._log_box.delete("1.0", "2.0")
            line_count -= 1
        self._log_box.insert("end", message.formatted() + "\n", message.normalized_tone())
        self._log_box.see("end")
        self._log_box.configure(state="disabled")

    def _show_captcha(self, data: str) -> None:
        image = decode_base64_image(data)
        if image is None:
            self._captcha_label.configure(image=None, text="")
            self._captcha_image = None
            return
        self._captcha_image = ctk.CTkImage(light_image=image, dark_image=image, size=CAPTCHA_SIZE)
        self._captcha_label.configure(image=self._captcha_image, text="")

    def _render_course_list(self, update: CourseListUpdate) -> None:
        for child in self._course_list_frame.winfo_children():
            child.destroy()

        snapshot = update.snapshot
        for column, title in enumerate(("状态", "课件名", "时长")):
            ctk.CTkLabel(
                self._course_list_frame,
                text=title,
                text_color=TEXT,
                font=ctk.CTkFont(weight="bold"),
            ).grid(row=0, column=column, sticky="w", padx=6, pady=(0, 4))

        for row, entry in enumerate(snapshot, start=1):
            color = COURSE_STATUS_COLORS.get(entry.status, TEXT_MUTED)
            ctk.CTkLabel(self._course_list_frame, text=entry.status.label, text_color=color).grid(
                row=row, column=0, sticky="w", padx=6
            )
            ctk.CTkLabel(self._course_list_frame, text=entry.name, text_color=TEXT, anchor="w").grid(
                row=row, column=1, sticky="ew", padx=6
            )
            ctk.CTkLabel(self._course_list_frame, text=entry.duration, text_color=TEXT).grid(
                row=row, column=2, sticky="e", padx=6
            )

        self._update_stats(snapshot, update.current_watched_seconds)

    def _update_stats(self, snapshot: CourseListSnapshot, watched: int) -> None:
        current = snapshot.current_course()
        current_total = current.total_seconds if current else 0
        finish_time = datetime.now() + timedelta(seconds=max(0, current_total - watched))

        self._stat_labels["total_count"].configure(text=str(len(snapshot)))
        self._stat_labels["finished_count"].configure(text=str(snapshot.completed_count))
        self._stat_labels["total_duration"].configure(text=format_duration(snapshot.total_seconds))
        self._stat_labels["remain_duration"].configure(text=format_duration(snapshot.remaining_seconds(watched)))
        self._stat_labels["current_total"].configure(text=format_duration(current_total))
        self._stat_labels["current_watched"].configure(text=format_duration(watched), text_color=ERROR)
        self._stat_labels["finish_time"].configure(text=format_clock_time(finish_time))
        self._last_watched_seconds = watched

    def _update_progress(self, update: ProgressUpdate) -> None:
        playing = update.watched_seconds > self._last_watched_seconds
        self._stat_labels["current_watched"].configure(
            text=format_duration(update.watched_seconds),
            text_color=SUCCESS if playing else ERROR,
        )
        self._last_watched_seconds = update.watched_seconds
        if update.remaining_seconds is not None:
            self._stat_labels["remain_duration"].configure(text=format_duration(update.remaining_seconds))
        if update.finish_time:
            self._stat_labels["finish_time"].configure(text=update.finish_time)

    def _show_qr_code(self, data: str) -> None:
        image = decode_base64_image(data)
        if image is None:
            self._qr_label.configure(image=None, text="")
            self._qr_image = None
            return
        self._qr_image = ctk.CTkImage(light_image=image, dark_image=image, size=QR_SIZE)
        self._qr_label.configure(image=self._qr_image, text="")
        self._qr_success = False
        self._qr_timer_label.configure(text="等待倒计时...", text_color=TEXT)

    def _update_qr_timer(self, value: str | int) -> None:
        if value == QR_SUCCESS_SENTINEL:
            self._qr_success = True
            self._qr_image = None
            self._qr_label.configure(image=None, text="")
            self._qr_timer_label.configure(text="人脸识别成功", text_color=SUCCESS)
            return
        if self._qr_success or not isinstance(value, str):
            return
        seconds = countdown_seconds(value)
        urgent = seconds is not None and seconds < 10
        self._qr_timer_label.configure(text=value, text_color=ERROR if urgent else SUCCESS)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def _load_config(self) -> None:
        config = self._session.load_config()
        self._browser_path_var.set(config.browser_executable_path)
        self._phone_var.set(config.phone)
        self._password_var.set(config.password)

    def _browse_browser(self) -> None:
        selected = filedialog.askopenfilename(title="选择 Chrome 浏览器")
        if selected:
            self._browser_path_var.set(selected)

    def _start(self) -> None:
        config = UserConfig(
            browser_executable_path=self._browser_path_var.get(),
            phone=self._phone_var.get().strip(),
            password=self._password_var.get().strip(),
        )
        if self._session.start(config):
            self._start_button.configure(state="disabled", text="已启动")

    def _send_credentials(self) -> None:
        credentials = Credentials(
            phone=self._phone_var.get(),
            password=self._password_var.get(),
            captcha=self._captcha_var.get(),
        )
        errors = self._session.submit_credentials(credentials)
        self._phone_error.configure(text=errors.get("phone", ""))
        self._password_error.configure(text=errors.get("password", ""))
        if not errors:
            self._captcha_var.set("")

    def _refresh_course_list(self) -> None:
        self._refresh_button.configure(state="disabled")

        def worker() -> None:
            result = self._session.refresh_course_list()
            if not result:
                self._notifier.log(f"刷新课件列表失败: {result.message}", "warning")
            self._root.after(1000, lambda: self._refresh_button.configure(state="normal"))

        threading.Thread(target=worker, daemon=True).start()

    @staticmethod
    def _set_enabled(button: ctk.CTkButton, enabled: bool) -> None:
        button.configure(state="normal" if enabled else "disabled")

    def _show_window(self) -> None:
        self._root.deiconify()
        self._root.lift()
        self._root.focus_force()

    def _hide_window(self) -> None:
        self._root.iconify()

    def _quit(self) -> None:
        self._session.shutdown()
        self._root.destroy()
