"""Personalized photo storybook generation pipeline."""
