# PATH: strategy/__init__.py
"""
Strategy package for dexwatch.

- config.py: StrategyConfig from strategy.yaml plus environment overrides
- profit.py: GasPriceCache and ProfitCalculator
- scanner.py: simple and triangular ArbitrageScanner
- monitor.py: ArbitrageMonitor task set and build_monitor wiring
"""
