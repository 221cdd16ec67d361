# examples/run_simple.py

import logging
import os

import matplotlib.pyplot as plt

from defi_exchange.models.exchange_model import ExchangeModel
from defi_exchange.utils.config_parser import load_config


def main():
    logging.basicConfig(level=logging.WARNING)

    # 1. Locate and load the YAML configuration
    script_dir = os.path.dirname(os.path.abspath(__file__))
    config = load_config(os.path.join(script_dir, "config_simple.yaml"))

    # 2. Instantiate the ExchangeModel and run it for the configured steps
    model = ExchangeModel(config)
    df = model.run()

    # 3. Print the last few rows of the collected pool metrics
    print("\n=== Final pool metrics (last 5 blocks) ===")
    print(df.tail())

    # 4. Summarise what happened on chain
    events = model.events_dataframe()
    print("\n=== Event counts ===")
    print(events["event"].value_counts())
    print("\nReverted transactions:", model.blockchain.metrics["tx_reverted"])

    # 5. Plot each pool's price (tokens per native unit)
    fig, ax = plt.subplots(figsize=(8, 4))
    for symbol in model.pools:
        ax.plot(df.index, df[f"{symbol}_price"].astype(float) / 1000, label=symbol)
    ax.set_xlabel("Block")
    ax.set_ylabel("Tokens per native unit")
    fig.suptitle("Pool Prices Over Time")
    fig.tight_layout()
    fig.legend(loc="upper left")
    plt.show()


if __name__ == "__main__":
    main()
