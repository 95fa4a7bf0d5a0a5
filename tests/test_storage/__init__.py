"""
Storage module tests for permastore.

Tests cover:
- Configuration models and environment loading (test_types.py, test_config.py)
- FileRecord lifecycle and the record store (test_records.py)
- Tag construction (test_tags.py)
- GatewayConnection against a mocked httpx transport (test_gateway.py)
- Cost estimation and funding (test_cost.py, test_funding.py)
- The upload pipeline and verification (test_pipeline.py, test_verification.py)
- The StorageService facade (test_service.py)
"""
