"""
Test fixtures package for the oracle agent tests.

- common.py: fakes for the proof engine, object store, HTTP and RPC
  endpoints, plus factories for configs, bundles and aggregation results.

Usage:
    from fixtures.common import FakeProofEngine, make_bundle

    def test_something():
        bundle = make_bundle(price=350.0)
"""
