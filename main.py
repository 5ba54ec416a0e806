"""Countdown Timer application entry point.

Wires the countdown controller and the fill animator into a single Kivy
screen:
- big remaining-time label with a Reset text button underneath
- a fill rectangle rising from the bottom, sized by the animated progress
- a round Play/Stop button

The controller owns all timing; this module only renders its properties and
forwards button presses.
"""

import logging

from kivy.app import App
from kivy.lang import Builder
from kivy.properties import BooleanProperty, DictProperty, NumericProperty, ObjectProperty, StringProperty
from kivy.uix.behaviors import ButtonBehavior
from kivy.uix.screenmanager import Screen, ScreenManager
from kivy.uix.widget import Widget
from kivy.utils import platform
from kivy.graphics import Color, Ellipse, InstructionGroup, Rectangle, Triangle

from progress import ProgressAnimator
from timer import CountdownController

log = logging.getLogger(__name__)


def _size_desktop_window():
    # Ensure desktop window starts in a smartphone-like portrait proportion (20:9)
    # Only apply on desktop platforms to avoid interfering with mobile builds
    if platform not in ("win", "linux", "macosx"):
        return
    try:
        from kivy.core.window import Window
        base_height = 800
        Window.size = (int(base_height * 9 / 20), base_height)
    except Exception:
        log.warning("Could not size desktop window", exc_info=True)


KV = r'''
#:import dp kivy.metrics.dp

<CountdownTimerScreen>:
    canvas.before:
        Color:
            rgba: app.theme['background']
        Rectangle:
            pos: self.pos
            size: self.size
        Color:
            rgba: app.theme['secondary']
        Rectangle:
            pos: self.pos
            size: self.width, self.height * root.progress
    BoxLayout:
        orientation: "vertical"
        padding: dp(16), dp(32)
        Widget:
            size_hint_y: .3
        Label:
            text: root.time_text
            color: app.theme['on_background']
            font_size: '56sp'
            size_hint_y: None
            height: dp(72)
        Button:
            text: "Reset"
            size_hint: None, None
            size: dp(120), dp(40)
            pos_hint: {"center_x": .5}
            background_normal: ""
            background_color: 0, 0, 0, 0
            color: app.theme['on_background']
            on_release: root.on_reset_click()
        Widget:
            size_hint_y: .3
        IconButton:
            kind: "stop" if root.has_started else "play"
            fill: app.theme['on_secondary'] if root.has_started else app.theme['secondary']
            glyph: app.theme['secondary'] if root.has_started else app.theme['on_secondary']
            size_hint: None, None
            size: dp(64), dp(64)
            pos_hint: {"center_x": .5}
            on_release: root.on_stop_click() if root.has_started else root.on_start_click()
        Widget:
            size_hint_y: .1
'''


class IconButton(ButtonBehavior, Widget):
    """Round button drawing a play triangle or a stop square."""

    kind = StringProperty('play')
    fill = ObjectProperty((1, 1, 1, 1))
    glyph = ObjectProperty((0, 0, 0, 1))

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._group = None
        self.bind(pos=self._redraw, size=self._redraw, kind=self._redraw,
                  fill=self._redraw, glyph=self._redraw)

    def _redraw(self, *args):
        if self._group is not None:
            self.canvas.remove(self._group)
        g = InstructionGroup()
        g.add(Color(*self.fill))
        g.add(Ellipse(pos=self.pos, size=self.size))
        g.add(Color(*self.glyph))
        size = min(self.width, self.height)
        cx = self.x + self.width / 2.0
        cy = self.y + self.height / 2.0
        # Glyph sits inside the middle ~40% of the button
        half = size * 0.2
        if self.kind == 'stop':
            g.add(Rectangle(pos=(cx - half, cy - half), size=(2 * half, 2 * half)))
        else:
            # Nudge right so the triangle looks optically centred
            l = cx - half * 0.8
            g.add(Triangle(points=[l, cy - half, l, cy + half, l + 2 * half, cy]))
        self._group = g
        self.canvas.add(g)


class CountdownTimerScreen(Screen):
    time_text = StringProperty('')
    progress = NumericProperty(0.)
    has_started = BooleanProperty(False)

    def __init__(self, controller=None, **kwargs):
        self._torn_down = False
        super().__init__(**kwargs)
        self.controller = controller if controller is not None else CountdownController()
        self.animator = ProgressAnimator(self.controller)
        self.controller.bind(display_text=self.setter('time_text'),
                             is_running=self.setter('has_started'),
                             on_finish=self._on_finish)
        self.animator.bind(value=self.setter('progress'))
        self.time_text = self.controller.display_text
        self.has_started = self.controller.is_running

    def on_manager(self, instance, manager):
        # ScreenManager also unparents screens on every switch; only a
        # cleared manager means the screen was really removed
        if manager is None:
            self.teardown()

    def _on_finish(self, controller):
        log.info("Time is up")

    # Controls API for kv buttons
    def on_start_click(self):
        try:
            self.controller.start()
        except Exception:
            log.exception("Start failed")

    def on_stop_click(self):
        try:
            self.controller.stop()
        except Exception:
            log.exception("Stop failed")

    def on_reset_click(self):
        try:
            self.controller.reset()
        except Exception:
            log.exception("Reset failed")

    def teardown(self):
        if self._torn_down:
            return
        self._torn_down = True
        self.animator.detach()
        self.controller.dispose()


class CountdownApp(App):
    theme = DictProperty({
        'background': (0.98, 0.98, 0.98, 1),
        'on_background': (0.1, 0.1, 0.1, 1),
        'secondary': (0.16, 0.47, 0.96, 1),
        'on_secondary': (1, 1, 1, 1),
    })
    timer_screen = None
    # Snapshot taken in on_pause, consumed by on_resume
    _saved_state = None

    def build(self):
        _size_desktop_window()
        Builder.load_string(KV)
        sm = ScreenManager()
        self.timer_screen = CountdownTimerScreen(name="countdown")
        sm.add_widget(self.timer_screen)
        return sm

    def on_pause(self):
        # Android: app is going to background; keep the countdown values and
        # stop ticking until we come back
        if self.timer_screen is not None:
            self._saved_state = self.timer_screen.controller.snapshot()
            self.timer_screen.controller.stop()
        return True

    def on_resume(self):
        if self._saved_state is not None and self.timer_screen is not None:
            self.timer_screen.controller.restore(self._saved_state)
        self._saved_state = None

    def on_stop(self):
        if self.timer_screen is not None:
            self.timer_screen.teardown()


if __name__ == "__main__":
    CountdownApp().run()
