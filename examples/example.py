"""Initialise a diagonal Gaussian mixture from k-means statistics.

The means are learned by scikit-learn's KMeans (the trainer), then a
CentroidModel assigns the data to them and provides the per-cluster
variances and weights used as the starting point of a GaussianMixture.
"""
import numpy as np
from sklearn.cluster import KMeans
from sklearn.mixture import GaussianMixture

from sklcentroids import CentroidModel

rng = np.random.RandomState(0)
X = np.vstack(
    [
        rng.normal(loc=0.0, scale=0.5, size=(300, 2)),
        rng.normal(loc=4.0, scale=1.0, size=(100, 2)),
    ]
)

kmeans = KMeans(n_clusters=2, n_init=1, random_state=0).fit(X)
model = CentroidModel.from_means(kmeans.cluster_centers_, verbose=1)

print("closest mean of the first sample:", model.find_nearest(X[0]))
print("min distances (first 5):", [round(model.min_distance(x), 4) for x in X[:5]])

variances, weights = model.cluster_statistics(X)
print("variances:\n", variances)
print("weights:", weights)

# floor the variances so empty or degenerate clusters stay invertible
variances = np.maximum(variances, 1e-6)
gmm = GaussianMixture(
    n_components=model.n_means,
    covariance_type="diag",
    means_init=model.get_means(),
    weights_init=weights,
    precisions_init=1.0 / variances,
    random_state=0,
).fit(X)
print("GMM means:\n", gmm.means_)

model.save("kmeans_model.npz")
print("reloaded model equal:", CentroidModel.from_config("kmeans_model.npz") == model)
