# housing_forest/config.py

TARGET = "Sale_Price"

# Nominal columns collapsed by the "other" step and the skewed numeric
# column handed to Box-Cox.
OTHER_COLUMNS = ["Neighborhood", "House_Style"]
OTHER_THRESHOLD = 0.01
BOXCOX_COLUMNS = ["Gr_Liv_Area"]

RANDOM_STATE = 42
TEST_SIZE = 0.3

PARAM_RANGES = {
    "mtry": [5, 40],
    "trees": [500, 2500],
    "min_n": [1, 10],
}

PARAM_LEVELS = {
    "mtry": 8,
    "trees": 10,
    "min_n": 5,
}

CV_FOLDS = 3
CV_REPEATS = 1
