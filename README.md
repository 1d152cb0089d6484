# rgbdvo

A small RGB-D visual odometry pipeline. It reads pairs of colour and depth
images, finds ORB-style keypoints and binary descriptors, matches them against
a local map of 3-D landmarks, estimates the camera pose with RANSAC PnP, and
refines that pose with a few Levenberg–Marquardt iterations on the
reprojection error. Landmarks that leave the image, are rarely matched or are
seen from too steep an angle are dropped from the map, and new ones are added
from pixels with a valid depth.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Running on a dataset

Write a parameter file in the YAML storage format (a leading `%YAML:1.0`
line is accepted). The keys read are:

```yaml
%YAML:1.0
dataset_dir: /path/to/rgbd_dataset
camera.fx: 517.3
camera.fy: 516.5
camera.cx: 325.1
camera.cy: 249.7
camera.depth_scale: 5000
number_of_features: 500
scale_factor: 1.2
level_pyramid: 4
match_ratio: 2.0
max_num_lost: 10
min_inliers: 10
keyframe_rotation: 0.1
keyframe_translation: 0.1
map_point_erase_ratio: 0.1
```

Raw depth values are divided by `camera.depth_scale` to give metres.

The dataset directory needs an `associate.txt` file. Each line holds
`rgb_time rgb_file depth_time depth_file`, with file paths relative to the
dataset directory. Then run:

```
rgbdvo-run params.yaml
```

The command prints the dataset directory and the number of entries, then one
line per tracked frame: the colour image's timestamp followed by the camera's
position in world coordinates (`time x y z`). Tracking stops at the first
image that cannot be read or when the odometry is lost. The exit status is 1
when the arguments are wrong or the parameter file or `associate.txt` is
missing.

## Using the library

```python
from rgbdvo.config import Config
from rgbdvo.camera import Camera
from rgbdvo.frame import Frame
from rgbdvo.visual_odometry import VisualOdometry, VOState
from rgbdvo.run_vo import load_image

config = Config.load("params.yaml")
camera = Camera.from_config(config)
vo = VisualOdometry.from_config(config)

frame = Frame.create(camera, load_image("rgb/0001.png"), load_image("depth/0001.png"), 0.0)
vo.add_frame(frame)
if vo.state is not VOState.LOST:
    print(frame.T_c_w.inverse().matrix())
```

`rgbdvo.run_vo.run(config, odometry=None)` tracks a whole dataset and returns
the camera-to-world `SE3` pose of every tracked frame. Pass an odometry object
to use something other than the default `VisualOdometry`.

The package's modules:

- `rgbdvo.se3`: `hat`, `so3_exp`, `so3_log` and the `SE3` class with `exp`,
  `log`, `inverse`, `matrix` and composition / point transformation via `*`.
- `rgbdvo.config`: `Config` and `parse_file_storage`, including matrix nodes.
- `rgbdvo.camera`: the pinhole `Camera` with world, camera and pixel
  conversions.
- `rgbdvo.frame`, `rgbdvo.mappoint`, `rgbdvo.slam_map`: `Frame`, `MapPoint`
  and `Map`.
- `rgbdvo.features`: `OrbExtractor`, `KeyPoint`, `Match`,
  `match_descriptors` (brute-force Hamming) and `select_good_matches`.
- `rgbdvo.edges` and `rgbdvo.optimizer`: reprojection and 3-D error terms with
  analytic Jacobians, `pose_update` and `optimize_pose`.
- `rgbdvo.pnp`: `solve_pnp` and `solve_pnp_ransac`.
- `rgbdvo.visual_odometry`: `VisualOdometry`, `VOState` and `view_angle`.
- `rgbdvo.reference_odometry`: `FrameToFrameOdometry`, a simpler tracker that
  matches each frame only against the previous accepted frame.

## What it does not do

There is no viewer: images, landmarks and camera poses are not displayed, and
the command only prints positions as text. Maps and trajectories are kept in
memory and are not saved to disk. There is no loop closure or global
optimisation; only the current pose is refined.