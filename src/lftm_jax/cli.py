"""Command-line front end.

Train::

    lftm --model LFLDA --corpus test/corpus.txt --vectors test/wordVectors.txt \\
         --ntopics 4 --initers 500 --niters 50 --name testLFLDA

Infer topics of an unseen corpus from a trained model::

    lftm --model LFLDA --paras test/testLFLDA.paras --corpus test/corpus_test.txt --name testLFLDAinf

Evaluate theta files against gold labels::

    lftm --model Eval --label test/corpus.LABEL --dir test --prob theta

Single-dash spellings (``-model``, ``-ntopics`` …) are accepted too.
"""

import argparse
import logging
import sys
from typing import List, Optional

from lftm_jax.errors import LFTMError
from lftm_jax.eval.clustering import evaluate
from lftm_jax.inference.experiment import MODELS, infer, train
from lftm_jax.inference.sampler import SamplerConfig

logger = logging.getLogger("lftm_jax")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lftm",
        description="LF-LDA / LF-DMM latent feature topic models with collapsed Gibbs sampling.",
    )
    p.add_argument("-model", "--model", required=True, choices=sorted(MODELS) + ["Eval"],
                   help="LFLDA, LFDMM, or Eval for document clustering evaluation")
    p.add_argument("-corpus", "--corpus", default="", help="path to the topic modeling corpus")
    p.add_argument("-vectors", "--vectors", default="", help="path to the word-vectors file")
    p.add_argument("-ntopics", "--ntopics", type=int, default=20, help="number of topics")
    p.add_argument("-alpha", "--alpha", type=float, default=0.1)
    p.add_argument("-beta", "--beta", type=float, default=0.01)
    p.add_argument("-lambda", "--lambda", dest="lam", type=float, default=0.6, help="mixture weight")
    p.add_argument("-initers", "--initers", type=int, default=2000, help="initial sampling iterations")
    p.add_argument("-niters", "--niters", type=int, default=200, help="EM-style sampling iterations")
    p.add_argument("-twords", "--twords", type=int, default=20, help="number of top topical words")
    p.add_argument("-name", "--name", default="model", help="experiment name")
    p.add_argument("-initFile", "--initFile", default="", help="topic-assignment file to start from")
    p.add_argument("-sstep", "--sstep", type=int, default=0, help="save outputs every N EM iterations")
    p.add_argument("-paras", "--paras", default="", help="manifest of a trained model (inference)")
    p.add_argument("--seed", type=int, default=0)
    p.add_argument("--workers", type=int, default=None, help="threads for topic-vector estimation")
    p.add_argument("--no-progress", action="store_true", help="disable progress bars")
    p.add_argument("-dir", "--dir", default="", help="folder of theta files (Eval)")
    p.add_argument("-label", "--label", default="", help="gold label file (Eval)")
    p.add_argument("-prob", "--prob", default="", help="suffix of theta files (Eval)")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.model == "Eval":
            if not (args.label and args.dir and args.prob):
                parser.error("Eval needs --label, --dir and --prob")
            evaluate(args.label, args.dir, args.prob)
            return 0

        if not args.corpus:
            parser.error("--corpus is required")
        config = SamplerConfig(
            num_init_iters=args.initers,
            num_iters=args.niters,
            seed=args.seed,
            save_step=args.sstep,
            num_workers=args.workers,
            show_progress=not args.no_progress,
        )
        if args.paras:
            infer(args.paras, args.corpus, top_words=args.twords, name=args.name, model_name=args.model, config=config)
        else:
            if not args.vectors:
                parser.error("--vectors is required for training")
            train(
                args.model, args.corpus, args.vectors,
                num_topics=args.ntopics, alpha=args.alpha, beta=args.beta, lam=args.lam,
                top_words=args.twords, name=args.name, init_file=args.initFile or None, config=config,
            )
    except (LFTMError, OSError) as err:
        logger.error("%s", err)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
