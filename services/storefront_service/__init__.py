"""Storefront service: cart, checkout pricing and payment verification."""
