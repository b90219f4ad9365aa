"""
Test suites for pointmerge.

create_test_data builds synthetic clouds with known poses.
"""
