
# Entry point: python main.py --config config/config.yaml
# (requires the package to be installed, e.g. `pip install -e .`)

from pipelines.run_projection import main


if __name__ == "__main__":
    main()
