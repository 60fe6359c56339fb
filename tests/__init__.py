"""Test package for the Stroop trainer.

The core tests drive the session engine with a ``FakeClock`` so no real
time passes. The UI smoke tests run headlessly using pygame's dummy video
driver to avoid opening real windows. To run these tests, execute
``pytest`` from the project root.
"""
