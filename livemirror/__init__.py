"""
livemirror - the session layer of a live-coding editor.

A session binds three things that each work fine alone and go wrong together:
a text editor, a pattern engine that turns code into a playing clock, and a
visual feedback loop that lights up the characters whose events are sounding.
livemirror keeps them consistent:

- **Evaluate and play.** ``Ctrl-Enter`` (or ``Alt-Enter``) flashes the buffer,
  evaluates it and starts or updates playback.  ``Ctrl-.`` stops.  Evaluation
  errors never stop the pattern that is already playing.
- **Per-character highlighting.** Every token of every mini-notation string
  knows where it came from, so the exact characters of sounding events are
  highlighted in time with the clock.
- **Live editor behavior.** Line numbers, wrapping, themes, keymaps and the
  rest are independent behavior slots that can be swapped while you type,
  without touching text, selection or undo history.
- **Shared settings.** One store, persisted as JSON, merged on every write.
- **One player at a time.** Starting a session stops every other session in
  the process.

A small reference engine is included: code is plain Python in which
``seq("bd [hh hh] sn ~")`` builds a cyclic pattern.

Minimal example:

    ```python
    import asyncio
    import livemirror

    async def main ():
        session = livemirror.Session(initial_code='seq("bd ~ sn ~").fast(2)')
        await session.evaluate()
        await asyncio.sleep(4)
        await session.stop()
        session.clear()

    asyncio.run(main())
    ```

Package-level exports: ``Session``, ``SettingsStore``, ``BehaviorRegistry``,
``LifecycleState``.
"""

import livemirror.behaviors
import livemirror.lifecycle
import livemirror.session
import livemirror.settings


Session = livemirror.session.Session
SettingsStore = livemirror.settings.SettingsStore
BehaviorRegistry = livemirror.behaviors.BehaviorRegistry
LifecycleState = livemirror.lifecycle.LifecycleState
