"""
Measure how large the stash grows under uniformly random accesses.

For each bucket size, the script runs random reads and writes against a fresh oram and reports the peak stash size
next to the tree height, together with the time per access.
"""

import argparse
import os
import random
import time

from oblivstore import initialize


def run(num_blocks: int, bucket_size: int, num_ops: int, data_size: int) -> None:
    """Run random accesses and print the peak stash size for one parameter set."""
    oram = initialize(num_blocks=num_blocks, bucket_capacity=bucket_size, data_size=data_size, stash_scale=50)
    height = oram.level

    start_time = time.time()
    for _ in range(num_ops):
        key = random.randrange(num_blocks)
        if random.random() < 0.5:
            oram.write(key, os.urandom(data_size))
        else:
            oram.read(key)
    elapsed = time.time() - start_time

    stats = oram.stats()
    print(f"Z={bucket_size:<2} H={height:<3} peak stash={stats.max_stash:<4} "
          f"peak/H={stats.max_stash / height:.2f} final stash={stats.stash_size:<4} "
          f"{elapsed / num_ops * 1000:.3f} ms/access")
    oram.close()


def main():
    parser = argparse.ArgumentParser(description="Stash size of path oram under random accesses.")
    parser.add_argument("--num-blocks", type=int, default=256)
    parser.add_argument("--num-ops", type=int, default=10000)
    parser.add_argument("--data-size", type=int, default=16)
    parser.add_argument("--bucket-sizes", type=int, nargs="+", default=[2, 3, 4, 5])
    args = parser.parse_args()

    print(f"N={args.num_blocks}, {args.num_ops} random accesses per run")
    for bucket_size in args.bucket_sizes:
        run(num_blocks=args.num_blocks, bucket_size=bucket_size, num_ops=args.num_ops, data_size=args.data_size)


if __name__ == "__main__":
    main()
