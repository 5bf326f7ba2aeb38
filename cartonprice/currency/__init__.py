"""Daily USD->ILS rate: Bank of Israel client and resolver."""
