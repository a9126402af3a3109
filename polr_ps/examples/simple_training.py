"""
Simple training example for the POLR parameter server.

This example demonstrates:
1. Generating a synthetic 20-newsgroups style shard
2. Splitting it into one byte range per worker
3. Running the synchronous master/worker protocol in threads
4. Evaluating the final model on a held-out sample

Run this example:
    python -m polr_ps.examples.simple_training --workers 2 --rounds 30
"""

import argparse
import os
import tempfile

from polr_ps import POLRConfig, POLRTrainingRun
from polr_ps.examples.synthetic_data import generate_newsgroup_lines, write_newsgroups_shard
from polr_ps.model import LocalModel, evaluate
from polr_ps.records import create_record_factory


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="POLR parameter server demo")
    parser.add_argument("--workers", type=int, default=2)
    parser.add_argument("--records", type=int, default=12000)
    parser.add_argument("--features", type=int, default=10000)
    parser.add_argument("--categories", type=int, default=20)
    parser.add_argument("--batch-size", type=int, default=200)
    parser.add_argument("--rounds", type=int, default=30)
    parser.add_argument("--learning-rate", type=float, default=0.5)
    parser.add_argument("--optimizer", default="sgd", choices=["sgd", "adagrad"])
    parser.add_argument("--checkpoint-dir", default=None)
    parser.add_argument("--seed", type=int, default=42)
    return parser.parse_args(argv)


def main(argv=None):
    """Main training function."""
    args = parse_args(argv)

    print("=" * 60)
    print("POLR Parameter Server - Simple Training Example")
    print("=" * 60)

    config = POLRConfig(
        feature_vector_size=args.features,
        num_categories=args.categories,
        batch_size=args.batch_size,
        record_factory="twenty_newsgroups",
        num_rounds=args.rounds,
        end_of_data_policy="wrap",
        learning_rate=args.learning_rate,
        optimizer=args.optimizer,
        seed=args.seed,
        checkpoint_dir=args.checkpoint_dir,
    )

    print(f"\nConfiguration:")
    print(f"  - Workers: {args.workers}")
    print(f"  - Features x categories: {config.feature_vector_size} x {config.num_categories}")
    print(f"  - Batch size: {config.batch_size}")
    print(f"  - Rounds: {config.num_rounds}")
    print(f"  - Optimizer: {config.optimizer} (lr={config.learning_rate})")

    with tempfile.TemporaryDirectory() as tmp:
        print("\n[1] Generating synthetic shard...")
        path = write_newsgroups_shard(
            os.path.join(tmp, "newsgroups.txt"),
            args.records,
            num_categories=args.categories,
            seed=args.seed,
        )
        print(f"    Wrote {args.records} records ({os.path.getsize(path)} bytes)")

        print(f"\n[2] Splitting into {args.workers} input splits...")
        run = POLRTrainingRun.from_file(config, path, args.workers)
        for worker in run.workers:
            print(f"    worker {worker.worker_id}: {worker.split}")

        print("\n[3] Training...")
        result = run.run()
        print(f"    Completed {result.rounds_completed} rounds "
              f"in {result.training_time_seconds:.2f}s")
        for stats in result.worker_stats:
            print(f"    worker {stats['worker_id']}: records={stats['records_trained']}, "
                  f"passes={stats['passes']}, "
                  f"avg_ll={stats['average_log_likelihood']:.4f}, "
                  f"correct={stats['percent_correct']:.1f}%")

    print("\n[4] Evaluating on held-out records...")
    factory = create_record_factory(
        config.record_factory, config.feature_vector_size, config.num_categories
    )
    model = LocalModel(
        config.feature_vector_size,
        config.num_categories,
        initial_vector=result.final_vector,
    )
    held_out = generate_newsgroup_lines(2000, num_categories=args.categories, seed=args.seed + 1)
    correct, total = evaluate(model, (factory.parse(line) for line in held_out))
    print(f"    Accuracy: {100.0 * correct / total:.1f}% ({correct}/{total})")

    if result.checkpoint_path:
        print(f"\n[5] Checkpoint saved to {result.checkpoint_path}")
    print("\nDone!")


if __name__ == "__main__":
    main()
