"""Storefront client core: cart state, selection, pricing and payment orchestration.

Components are plain objects wired together by ``Storefront`` (see
``container.py``); every remote failure is reported as a typed outcome.
"""
