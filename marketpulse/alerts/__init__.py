"""Alert rules, alert records and the rule evaluation engine."""
