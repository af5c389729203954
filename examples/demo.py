#!/usr/bin/env python3
"""
kore-companion demo: memory that fades, a mood that lingers, a voice that waits its turn.

No LLM needed. No API keys. Just run it.
"""

import os
import tempfile
from datetime import datetime

from kore_companion import Companion, EmotionalState, RelationTier, numpy_embed

DAY = 86400.0


class SimulatedClock:
    """Weeks pass in milliseconds."""

    def __init__(self, start: float) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def header(text):
    print(f"\n{'='*64}")
    print(f"  {text}")
    print(f"{'='*64}\n")


def show(companion, clock, label=""):
    now = clock()
    memories = companion.memory.active()
    scored = sorted(((companion.memory.strength(m, now), m) for m in memories),
                    key=lambda pair: pair[0], reverse=True)
    if label:
        print(f"  [{label}] {len(scored)} memories:")
    for strength, m in scored:
        n = int(strength * 20)
        bar = "█" * n + "░" * (20 - n)
        status = " ← fading" if strength < 0.1 else ""
        print(f"    {bar} {strength:.2f} | imp {m.importance:.1f} | {m.content[:45]}{status}")
    print()


def show_decision(label, decision):
    verdict = "SPEAK" if decision.should_speak else "quiet"
    print(f"  {label:<34} {verdict:<6} {decision.timing.value:<22} "
          f"{decision.priority.value:<7} score {decision.scores.overall:.2f}")


def main():
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    clock = SimulatedClock(datetime(2024, 5, 6, 10, 0).timestamp())
    companion = Companion(db_path, embed_fn=numpy_embed(), clock=clock)

    header("KORE-COMPANION: Lifecycle Demo")

    # ── Week 1 ─────────────────────────────────────────────────────────

    header("WEEK 1: First meeting")

    companion.experience("Carlos's birthday is on June 3rd", category="anniversary",
                         emotion_tag="happy", emotion_intensity=0.8,
                         related_characters={"carlos"})
    companion.experience("Carlos prefers short and direct answers", category="preference")
    companion.experience("Carlos is studying for the graduation exam", category="fact")
    companion.experience("ok cool")
    companion.experience("weather talk")

    show(companion, clock, "Week 1: all fresh")

    # ── Week 3 ─────────────────────────────────────────────────────────

    header("WEEK 3: Recall what matters")

    clock.advance(14 * DAY)
    for hit in companion.recall("carlos birthday june", top_k=2):
        print(f"  recalled: {hit.memory.content}  (score {hit.score:.2f})")
    print()
    show(companion, clock, "Week 3: trivia decaying")

    # ── Month 6 ────────────────────────────────────────────────────────

    header("MONTH 6: Maintenance")

    clock.advance(150 * DAY)
    report = companion.maintain()
    print(f"  forgotten: {report.forgotten}, low quality: {report.low_quality}, "
          f"deleted: {report.deleted}\n")
    show(companion, clock, "Survivors")
    health = companion.memory.health_report()
    print(f"  health: {health.status} ({health.score:.2f})")
    for tip in health.recommendations:
        print(f"    - {tip}")

    # ── Feelings and fatigue ───────────────────────────────────────────

    header("FEELINGS: Sadness does not switch off")

    companion.emotion.request_change(EmotionalState.SAD, "Carlos forgot to say goodbye",
                                     intensity=0.8, force=True)
    companion.emotion.request_change(EmotionalState.HAPPY, "a good joke", intensity=0.8)
    transition = companion.emotion.transition()
    print(f"  now: {companion.emotion.current_emotion().value}, heading to "
          f"{transition.target.value} in {transition.remaining_seconds(clock()):.0f}s")
    clock.advance(600)
    print(f"  ten minutes later: {companion.emotion.current_emotion().value}\n")

    for _ in range(6):
        companion.observe(True, intensity=0.15)
    print(f"  after a long chat: {companion.state().describe()} "
          f"(energy {companion.state().overall_energy:.2f})")

    # ── Speaking up ────────────────────────────────────────────────────

    header("SPEAKING: Should I say something?")

    show_decision("stranger small talk",
                  companion.tick(time_signal=0.4, relation=0.2, context=0.3))
    show_decision("Carlos, mid-conversation",
                  companion.tick(time_signal=0.8, relation=0.9, context=0.8, curiosity=0.7,
                                 urgency=0.6, tier=RelationTier.PRIMARY,
                                 conversation_active=True))
    show_decision("Carlos calls my name",
                  companion.tick(time_signal=0.8, relation=0.9, context=0.6,
                                 tier=RelationTier.PRIMARY, named=True))

    # ── Summary ────────────────────────────────────────────────────────

    header("WHAT HAPPENED")

    print("""  DECAY       "ok cool" and "weather talk" were never recalled.
              Their strength fell under the bar and they were forgotten.

  REINFORCE   The birthday survived: it was important, emotional,
              and we thought about it. Use = life.

  MOOD        Moving out of sadness takes minutes, not milliseconds.

  FATIGUE     Long conversations tire the companion; rest restores it.

  RESTRAINT   Strangers need a stronger reason than Carlos does.

  ONE FILE    The whole memory = one .db file. Portable. Copyable.
""")

    companion.close()
    os.unlink(db_path)


if __name__ == "__main__":
    main()
