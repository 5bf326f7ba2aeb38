"""Pricing: rule resolvers, special prices, calculator, validator, service."""
