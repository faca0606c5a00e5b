"""Generate a sample product CSV in the admin bulk-upload format.

Rows use a handful of real producer names, with the odd misspelling so the
upload review shows producer suggestions.

Usage:
    uv run python scripts/generate_sample_upload.py --rows 50
"""

import argparse
import csv
import random
import sys
from pathlib import Path

from crowdvine.services.bulk_upload import REQUIRED_HEADERS

PRODUCERS = [
    "Domaine de la Vougeraie",
    "Azienda Agricola Foradori",
    "Bodegas Ostatu",
    "Weingut Keller",
    "Château Le Puy",
]

# Slight variations of the producer names above
MISSPELLINGS = {
    "Weingut Keller": "Weingut Kellar",
    "Bodegas Ostatu": "Bodega Ostatu",
}

WINES = [
    ("Clos Blanc", "white", "Chardonnay"),
    ("Teroldego", "red", "Teroldego"),
    ("Rosado", "rose", "Tempranillo, Viura"),
    ("Von der Fels", "white", "Riesling"),
    ("Emilien", "red", "Merlot, Cabernet Franc"),
    ("Les Evocelles", "red", "Pinot Noir"),
]


def sample_row(rng: random.Random, index: int) -> dict[str, str]:
    producer = rng.choice(PRODUCERS)
    if producer in MISSPELLINGS and rng.random() < 0.2:
        producer = MISSPELLINGS[producer]
    name, color, grapes = rng.choice(WINES)
    vintage = rng.randint(2015, 2023)
    price = rng.randrange(19900, 69900, 500) / 100
    return {
        "Wine Name": f"{name} {index}",
        "Vintage": str(vintage),
        "Grape Varieties": grapes,
        "Color": color.title(),
        "Base Price (SEK)": f"{price:.2f}",
        "Producer Name": producer,
        "Handle": "",
        "Description": f"{name} from {producer}, vintage {vintage}.",
        "Description HTML": "",
        "Image URL": f"https://images.example.com/wines/{index}.jpg",
    }


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--rows", type=int, default=20)
    parser.add_argument("--output", type=Path, default=Path("data/sample_products.csv"))
    parser.add_argument("--seed", type=int, default=1)
    args = parser.parse_args()

    # Headers are matched case-insensitively on upload
    headers = [
        h.title().replace("(Sek)", "(SEK)").replace("Html", "HTML").replace("Url", "URL")
        for h in REQUIRED_HEADERS
    ]
    rng = random.Random(args.seed)
    args.output.parent.mkdir(parents=True, exist_ok=True)
    with args.output.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=headers)
        writer.writeheader()
        for i in range(1, args.rows + 1):
            writer.writerow(sample_row(rng, i))

    print(f"Wrote {args.rows} rows to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
