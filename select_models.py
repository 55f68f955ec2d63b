#!/usr/bin/env python3
"""
Automatic seasonal ARIMA order selection and model-family comparison.

Usage
-----
    python select_models.py --help
    python select_models.py --series-csv data/sales.csv --period 12 --holdout 12
    python select_models.py --series-csv data/sales.csv --families sarima,sarimax --regressor price

The implementation lives in forecast_engine_src/:
- stationarity_utils.py: differencing order selection
- order_search.py: exhaustive grid and stepwise candidate generation
- forecasting_utils.py: SARIMAX fitting, search driver and forecasts
- selection_utils.py: information-criterion ranking
- metrics_utils.py: forecast accuracy metrics
- var_utils.py: vector autoregression
- comparison_utils.py: out-of-sample family comparison
- main.py: CLI entry point
"""

import sys

from forecast_engine_src.main import main

if __name__ == "__main__":
    sys.exit(main())
