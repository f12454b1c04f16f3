"""Core domain modules.

- fund: valuation, issuance, redemption and the FundManager facade
- fees: fee accrual strategies (management, performance)
- persistence: persistence boundary (interfaces)
- storage: concrete persistence implementations (PostgreSQL)
- fixed_point, errors, types: shared amounts, exceptions and value types
"""
