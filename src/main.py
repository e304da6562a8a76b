"""Main entry point for explaining survival models.

Fits the Cox PH, random survival forest and Weibull AFT models, wraps each
in an explainer and runs every explanation analysis:
model performance, variable importance, variable response, ceteris paribus
and prediction breakdown (break-down and SHAP).
Supports sample (development) and production runs and CSV or pickle input;
without an input file the bundled veterans lung cancer data is used.

Can be used as CLI or imported as a function.
"""
from survival_explain.breakdown import predict_parts
from survival_explain.config import SurvivalExplainConfig, create_execution_config
from survival_explain.data import load_data, load_veterans, split_X_y
from survival_explain.explainer import explain
from survival_explain.importance import model_parts
from survival_explain.logging_config import setup_logging
from survival_explain.performance import compare_performance, model_performance
from survival_explain.profiles import model_profile, predict_profile
from survival_explain.timing import Timer
from survival_explain.tracking import start_run, log_params, log_metrics, log_artifact
from survival_explain.train import fit_models, save_models
from survival_explain.utils import RunType, get_output_paths, save_explanation
import os
import argparse
import logging
from typing import List, Optional


def run_pipeline(
    input_file: Optional[str] = None,
    run_type: RunType = "sample",
    observation_index: int = 0,
    variables: Optional[List[str]] = None,
    config: Optional[SurvivalExplainConfig] = None,
    output_base: str = "data/outputs",
    track: bool = True,
    console_output: bool = True,
    log_level: int = logging.INFO,
) -> int:
    """Run the survival explanation pipeline.

    Args:
        input_file: Path to input file (CSV or pickle) with the configured
            feature, time and event columns. None uses the veterans lung
            cancer data bundled with scikit-survival
        run_type: "sample" for development, "production" for full data.
            Selects output directories and, without ``config``, defaults
        observation_index: Row of the data explained by ceteris paribus and
            prediction breakdown
        variables: Variables for the profile and importance analyses.
            Defaults to every feature
        config: Complete SurvivalExplainConfig. Defaults to
            ``SurvivalExplainConfig.for_run_type(run_type)``
        output_base: Root of the output tree
            (``{output_base}/{run_type}/explanations`` etc.)
        track: Log parameters, metrics and CSVs to MLflow
        console_output: Echo log messages to stdout
        log_level: Console log level

    Returns:
        Exit code (0 for success, 1 for failure)

    Side Effects:
        - Writes one CSV per model and analysis to the explanations directory
          plus performance_comparison.csv
        - Saves fitted pipelines with joblib to the models directory
        - Writes log files to ``{output_base}/{run_type}/logs``

    Example:
        >>> from main import run_pipeline
        >>> run_pipeline(run_type="sample", observation_index=3, variables=["karno", "celltype"])
        0
    """
    config = config or SurvivalExplainConfig.for_run_type(run_type)
    paths = get_output_paths(run_type, base=output_base)
    logger = setup_logging(
        run_type=run_type,
        log_level=log_level,
        console_output=console_output,
        log_dir=os.path.join(paths["base_dir"], "logs"),
    )

    if input_file is not None and not os.path.exists(input_file):
        logger.error(f"Input file not found: {input_file}")
        return 1

    analysis = config.analysis
    execution = config.execution

    logger.info("=" * 70)
    logger.info(f"SURVIVAL EXPLANATIONS - {run_type.upper()} RUN")
    logger.info(f"Input:     {input_file or 'veterans lung cancer (scikit-survival)'}")
    logger.info(f"Execution: {execution}")
    logger.info("=" * 70)

    with Timer(logger, "Data loading"):
        df = load_veterans() if input_file is None else load_data(input_file, config.data)
        X, y = split_X_y(df, config.data)
    logger.info(f"Loaded {len(X):,} records with {X.shape[1]} features")

    if not 0 <= observation_index < len(X):
        logger.error(f"observation_index {observation_index} outside [0, {len(X)})")
        return 1
    observation = X.iloc[[observation_index]]

    pipelines = fit_models(
        X, y,
        hyperparameters=config.hyperparameters,
        data_config=config.data,
        execution_config=execution,
    )
    model_paths = save_models(pipelines, paths["models"], run_type=run_type)

    explainers = {
        name: explain(pipe, X, y, label=name, n_times=analysis.time_grid_points)
        for name, pipe in pipelines.items()
    }

    written = []
    performances = []
    for name, explainer in explainers.items():
        logger.info(f"\n=== Explaining {name} ===")
        with Timer(logger, f"{name} explanations"):
            perf = model_performance(explainer)
            performances.append(perf)
            written.append(save_explanation(perf.to_frame(), paths["explanations"], f"{name}_performance"))

            importance = model_parts(
                explainer,
                loss=analysis.importance_loss,
                variables=variables,
                B=analysis.importance_permutations,
                random_state=analysis.random_state,
                execution_config=execution,
            )
            written.append(save_explanation(importance.result, paths["explanations"], f"{name}_importance"))

            response = model_profile(
                explainer,
                variables=variables,
                grid_points=analysis.profile_grid_points,
                n_observations=analysis.profile_n_observations,
                random_state=analysis.random_state,
                execution_config=execution,
            )
            written.append(save_explanation(response.result, paths["explanations"], f"{name}_variable_response"))

            profile = predict_profile(
                explainer,
                observation,
                variables=variables,
                grid_points=analysis.profile_grid_points,
                execution_config=execution,
            )
            written.append(save_explanation(profile.result, paths["explanations"], f"{name}_ceteris_paribus"))

            for kind in ("break_down", "shap"):
                parts = predict_parts(
                    explainer,
                    observation,
                    type=kind,
                    B=analysis.shap_orderings,
                    n_observations=analysis.breakdown_n_observations,
                    random_state=analysis.random_state,
                )
                written.append(save_explanation(parts.to_frame(), paths["explanations"], f"{name}_{kind}"))

    comparison = compare_performance(performances)
    written.append(save_explanation(comparison, paths["explanations"], "performance_comparison"))
    top = comparison.iloc[0]
    logger.info(
        f"Top model: {top['label']} (IBS={top['integrated_brier_score']:.4f}, "
        f"C-index={top['c_index']:.4f})"
    )

    if track:
        with start_run(run_name=f"survival_explain_{run_type}", tracking_dir=paths["mlruns"]):
            log_params({
                "run_type": run_type,
                "input_file": input_file or "veterans",
                "n_samples": len(X),
                "observation_index": observation_index,
                "execution_mode": execution.mode.value,
                "n_jobs": execution.n_jobs,
                **{f"analysis_{k}": v for k, v in config.to_dict()["analysis"].items()},
            }, logger=logger)
            for perf in performances:
                log_metrics({f"{perf.label}_{k}": v for k, v in perf.summary().items()}, logger=logger)
            for path in written + list(model_paths.values()):
                log_artifact(path, logger=logger)

    logger.info(f"Explanations saved to: {paths['explanations']}")
    logger.info(f"[{run_type.upper()}] Explanations complete")
    return 0


def main():
    """Main execution function with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Survival Explanations - Fit survival models and explain them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Explain models fitted on the bundled veterans data
  python src/main.py

  # Own data, explain the 10th record, profile two variables
  python src/main.py --input data/inputs/sample/data.csv --observation-index 10 --variables karno age

  # Production run with variables spread over 8 cores
  python src/main.py --input data.pkl --run-type production --execution-mode mp --n-jobs 8

  # Settings from a saved configuration
  python src/main.py --config configs/production.json
        """
    )

    parser.add_argument(
        "--input",
        type=str,
        default=None,
        help="Path to input file (CSV or pickle). Default: veterans lung cancer data"
    )

    parser.add_argument(
        "--run-type",
        type=str,
        choices=["sample", "production"],
        default="sample",
        help="Run type: 'sample' for development, 'production' for full data. Default: sample"
    )

    parser.add_argument(
        "--observation-index",
        type=int,
        default=0,
        help="Row explained by ceteris paribus and breakdown. Default: 0"
    )

    parser.add_argument(
        "--variables",
        nargs="+",
        default=None,
        help="Variables for profiles and importance. Default: all features"
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a SurvivalExplainConfig JSON file"
    )

    parser.add_argument(
        "--execution-mode",
        type=str,
        choices=["pandas", "mp"],
        default=None,
        help="Execution mode: 'pandas' (sequential), 'mp' (joblib over variables). Default: from run type"
    )

    parser.add_argument(
        "--n-jobs",
        type=int,
        default=-1,
        help="Number of parallel jobs for multiprocessing. -1 means use all cores. Default: -1"
    )

    parser.add_argument(
        "--no-mlflow",
        action="store_true",
        help="Skip MLflow tracking"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING"],
        default="INFO",
        help="Console log level. Default: INFO"
    )

    args = parser.parse_args()

    if args.config is not None:
        config = SurvivalExplainConfig.load(args.config)
    else:
        config = SurvivalExplainConfig.for_run_type(args.run_type)

    if args.execution_mode is not None:
        config.execution = create_execution_config(mode=args.execution_mode, n_jobs=args.n_jobs)

    return run_pipeline(
        input_file=args.input,
        run_type=args.run_type,
        observation_index=args.observation_index,
        variables=args.variables,
        config=config,
        track=not args.no_mlflow,
        log_level=getattr(logging, args.log_level),
    )


if __name__ == "__main__":
    exit(main())
