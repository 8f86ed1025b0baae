# MediaPipe Pose landmark order (33 points)
LANDMARK_NAMES = [
    "nose", "left_eye_inner", "left_eye", "left_eye_outer",
    "right_eye_inner", "right_eye", "right_eye_outer",
    "left_ear", "right_ear", "mouth_left", "mouth_right",
    "left_shoulder", "right_shoulder", "left_elbow", "right_elbow",
    "left_wrist", "right_wrist", "left_pinky", "right_pinky",
    "left_index", "right_index", "left_thumb", "right_thumb",
    "left_hip", "right_hip", "left_knee", "right_knee",
    "left_ankle", "right_ankle", "left_heel", "right_heel",
    "left_foot_index", "right_foot_index",
]

NAME_TO_INDEX = {name: i for i, name in enumerate(LANDMARK_NAMES)}
NUM_LANDMARKS = len(LANDMARK_NAMES)

# Joints that take part in comparisons; face and finger points are too noisy.
CORE_LANDMARKS = [
    "left_shoulder", "right_shoulder",
    "left_elbow", "right_elbow",
    "left_wrist", "right_wrist",
    "left_hip", "right_hip",
    "left_knee", "right_knee",
    "left_ankle", "right_ankle",
]
CORE_INDICES = [NAME_TO_INDEX[name] for name in CORE_LANDMARKS]

# Needed to center and scale a frame.
TORSO_LANDMARKS = ("left_shoulder", "right_shoulder", "left_hip", "right_hip")


def is_known(name: str) -> bool:
    return name in NAME_TO_INDEX


def index_of(name: str) -> int:
    try:
        return NAME_TO_INDEX[name]
    except KeyError:
        raise ValueError(f"Unknown landmark: {name!r}") from None
