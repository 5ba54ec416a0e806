"""Smoothed fill value for the countdown screen.

The raw controller progress only changes once per tick, so the fill bar
follows ``ProgressAnimator.value`` instead: an ease towards the current
progress, then a linear run down to empty over the remaining time.
"""
import logging

from kivy.animation import Animation
from kivy.event import EventDispatcher
from kivy.properties import NumericProperty

log = logging.getLogger(__name__)

# Stretch the linear run so the bar never empties before the countdown does
SAFETY_MARGIN = 0.05
EASE_DURATION = 0.3
EASE_TRANSITION = 'out_quad'


def decay_duration(remaining_ms, margin=SAFETY_MARGIN):
    """Seconds the linear run to empty should last."""
    return max(0, remaining_ms) * (1 + margin) / 1000.0


class ProgressAnimator(EventDispatcher):
    value = NumericProperty(0.)

    def __init__(self, controller, margin=SAFETY_MARGIN, ease_duration=EASE_DURATION, **kwargs):
        super().__init__(**kwargs)
        self.controller = controller
        self.margin = margin
        self.ease_duration = ease_duration
        self.animation = None
        controller.bind(is_running=self._on_running)

    def _on_running(self, controller, running):
        Animation.cancel_all(self, 'value')
        if running:
            target = controller.progress or 1.0
            anim = Animation(value=target, d=self.ease_duration, t=EASE_TRANSITION)
            anim.bind(on_complete=self._on_settled)
        else:
            anim = Animation(value=0., d=self.ease_duration, t=EASE_TRANSITION)
        self.animation = anim
        anim.start(self)

    def _on_settled(self, anim, target):
        if not self.controller.is_running:
            return
        duration = decay_duration(self.controller.remaining_ms, self.margin)
        log.debug("Fill decays over %.2f s", duration)
        self.animation = Animation(value=0., d=duration, t='linear')
        self.animation.start(self)

    def detach(self):
        self.controller.unbind(is_running=self._on_running)
        Animation.cancel_all(self, 'value')
        self.animation = None
