"""
Reference and sample data loaded by `SeedLoader`.

Cross-collection references are expressed by human-readable keys (sport name,
skill name, quiz title) and resolved to generated ids during a seeding run.
"""

from __future__ import annotations

from typing import Dict, List

from coachstore.domain.models import Achievement, AppSettings, Quiz, QuizQuestion, Skill, Sport

SKILLS_SPORT = "Basketball"

SAMPLE_SPORTS: List[Sport] = [
    Sport(
        name="Basketball",
        description=(
            "Learn the fundamentals of basketball, from basic dribbling to advanced shooting "
            "techniques and team strategies."
        ),
        icon="🏀",
        color="#FF8C00",
        category="Team Sports",
        difficulty="introduction",
        estimated_time_to_complete=40,
        image_url="https://images.unsplash.com/photo-1546519638-68e109498ffc?w=800",
        tags=["team-sport", "indoor", "cardio", "coordination"],
        is_featured=True,
        order=1,
    ),
    Sport(
        name="Soccer",
        description=(
            "Master the beautiful game with comprehensive training covering ball control, passing, "
            "shooting, and tactical awareness."
        ),
        icon="⚽",
        color="#4CAF50",
        category="Team Sports",
        difficulty="introduction",
        estimated_time_to_complete=50,
        image_url="https://images.unsplash.com/photo-1431324155629-1a6deb1dec8d?w=800",
        tags=["team-sport", "outdoor", "cardio", "endurance"],
        is_featured=True,
        order=2,
    ),
    Sport(
        name="Tennis",
        description="Develop your tennis skills from basic strokes to advanced match strategies and mental toughness.",
        icon="🎾",
        color="#FFD700",
        category="Individual Sports",
        difficulty="development",
        estimated_time_to_complete=35,
        image_url="https://images.unsplash.com/photo-1544725176-7c40e5a71c5e?w=800",
        tags=["individual-sport", "outdoor", "precision", "agility"],
        is_featured=True,
        order=3,
    ),
    Sport(
        name="Swimming",
        description=(
            "Learn essential swimming techniques, breathing patterns, and competitive strokes for all skill levels."
        ),
        icon="🏊",
        color="#2196F3",
        category="Individual Sports",
        difficulty="introduction",
        estimated_time_to_complete=30,
        image_url="https://images.unsplash.com/photo-1530549387789-4c1017266635?w=800",
        tags=["individual-sport", "water", "cardio", "full-body"],
        order=4,
    ),
    Sport(
        name="Rock Climbing",
        description=(
            "Build strength, technique, and mental fortitude through progressive rock climbing training "
            "and safety protocols."
        ),
        icon="🧗",
        color="#8D4E85",
        category="Adventure Sports",
        difficulty="refinement",
        estimated_time_to_complete=60,
        image_url="https://images.unsplash.com/photo-1551524164-6cf96ac4c4c1?w=800",
        tags=["adventure", "strength", "outdoor", "mental-focus"],
        order=5,
    ),
    Sport(
        name="Yoga",
        description="Discover physical and mental wellness through various yoga practices, poses, and meditation techniques.",
        icon="🧘",
        color="#9C27B0",
        category="Wellness",
        difficulty="introduction",
        estimated_time_to_complete=25,
        image_url="https://images.unsplash.com/photo-1544367567-0f2fcb009e0b?w=800",
        tags=["wellness", "flexibility", "mindfulness", "indoor"],
        is_featured=True,
        order=6,
    ),
]

ADDITIONAL_SPORTS: List[Sport] = [
    Sport(
        name="Volleyball",
        description="Master serving, spiking, and team coordination in this dynamic indoor sport.",
        icon="🏐",
        color="#FF5722",
        category="Team Sports",
        difficulty="development",
        estimated_time_to_complete=35,
        image_url="https://images.unsplash.com/photo-1612872087720-bb876e2e67d1?w=800",
        tags=["team-sport", "indoor", "jumping", "coordination"],
        order=7,
    ),
    Sport(
        name="Golf",
        description="Perfect your swing, putting, and course management in this precision sport.",
        icon="⛳",
        color="#4CAF50",
        category="Individual Sports",
        difficulty="development",
        estimated_time_to_complete=80,
        image_url="https://images.unsplash.com/photo-1535131749006-b7f58c99034b?w=800",
        tags=["individual-sport", "outdoor", "precision", "mental-focus"],
        order=8,
    ),
    Sport(
        name="Martial Arts",
        description=(
            "Develop discipline, technique, and self-defense skills through traditional martial arts training."
        ),
        icon="🥋",
        color="#795548",
        category="Combat Sports",
        difficulty="refinement",
        estimated_time_to_complete=100,
        image_url="https://images.unsplash.com/photo-1555597673-b21d5c935865?w=800",
        tags=["combat", "discipline", "strength", "flexibility"],
        order=9,
    ),
    Sport(
        name="Running",
        description="Build endurance, speed, and proper running form for all distances.",
        icon="🏃",
        color="#607D8B",
        category="Individual Sports",
        difficulty="introduction",
        estimated_time_to_complete=20,
        image_url="https://images.unsplash.com/photo-1544717297-fa95b6ee9643?w=800",
        tags=["individual-sport", "cardio", "endurance", "outdoor"],
        is_featured=True,
        order=10,
    ),
]

# All sample skills belong to SKILLS_SPORT
SAMPLE_SKILLS: List[Skill] = [
    Skill(
        name="Basic Dribbling",
        description=(
            "Learn fundamental dribbling techniques including proper hand positioning, ball control, and basic moves."
        ),
        difficulty="introduction",
        estimated_time_to_complete=30,
        content=(
            "<h2>Basic Dribbling Fundamentals</h2><p>Dribbling is the foundation of basketball ball handling.</p>"
            "<ul><li>Keep your head up</li><li>Use fingertips, not palm</li><li>Stay low and balanced</li>"
            "<li>Practice with both hands</li></ul>"
        ),
        external_resources=[
            {
                "id": "1",
                "title": "NBA Dribbling Fundamentals",
                "url": "https://www.nba.com/dribbling-fundamentals",
                "type": "website",
                "description": "Official NBA guide to dribbling basics",
            }
        ],
        media={
            "text": "Watch these demonstration videos to see proper dribbling form.",
            "videos": [{"id": "1", "youtubeId": "dQw4w9WgXcQ", "title": "Basic Dribbling Tutorial", "duration": 420, "order": 1}],
        },
        learning_objectives=[
            "Maintain proper dribbling form",
            "Dribble with both hands confidently",
            "Keep head up while dribbling",
            "Control the ball at different speeds",
        ],
        tags=["fundamentals", "ball-handling", "introduction"],
        has_video=True,
        has_quiz=True,
        order=1,
    ),
    Skill(
        name="Shooting Form",
        description=(
            "Master proper shooting mechanics including stance, grip, release, and follow-through "
            "for consistent accuracy."
        ),
        difficulty="introduction",
        estimated_time_to_complete=45,
        content=(
            "<h2>Shooting Form Fundamentals</h2><p>Proper shooting form is crucial for accuracy and consistency.</p>"
            "<ul><li>Balance</li><li>Eyes on the rim</li><li>Elbow under the ball</li><li>Follow-through</li></ul>"
        ),
        external_resources=[
            {
                "id": "1",
                "title": "Shooting Form Analysis",
                "url": "https://www.basketball-reference.com/shooting-form",
                "type": "website",
                "description": "Detailed breakdown of professional shooting techniques",
            }
        ],
        media={
            "text": "Study the shooting motion frame by frame.",
            "videos": [
                {"id": "1", "youtubeId": "dQw4w9WgXcQ", "title": "Perfect Shooting Form Tutorial", "duration": 480, "order": 1}
            ],
        },
        learning_objectives=[
            "Demonstrate proper shooting stance",
            "Execute correct grip and release",
            "Maintain consistent follow-through",
            "Achieve 70% accuracy from free throw line",
        ],
        tags=["shooting", "fundamentals", "accuracy"],
        has_video=True,
        has_quiz=True,
        order=2,
    ),
    Skill(
        name="Defensive Stance",
        description="Learn proper defensive positioning, footwork, and techniques to become an effective defender.",
        difficulty="development",
        estimated_time_to_complete=40,
        content=(
            "<h2>Defensive Fundamentals</h2><p>Great defense requires proper stance, active hands, and quick feet.</p>"
            "<ul><li>Low stance with wide base</li><li>Active hands up and out</li><li>Stay on balls of feet</li>"
            "<li>Mirror the offensive player</li></ul>"
        ),
        external_resources=[
            {
                "id": "1",
                "title": "Elite Defensive Techniques",
                "url": "https://www.espn.com/basketball-defense",
                "type": "website",
                "description": "Advanced defensive strategies from professional coaches",
            }
        ],
        media={
            "text": "Watch how elite defenders position themselves.",
            "videos": [{"id": "1", "youtubeId": "dQw4w9WgXcQ", "title": "Defensive Stance and Movement", "duration": 360, "order": 1}],
        },
        learning_objectives=[
            "Maintain proper defensive stance",
            "Execute lateral movement drills",
            "Apply pressure without fouling",
            "Anticipate offensive moves",
        ],
        tags=["defense", "footwork", "positioning"],
        has_video=True,
        has_quiz=True,
        order=3,
    ),
]

# skill name -> names of the skills it requires
SKILL_PREREQUISITES: Dict[str, List[str]] = {"Defensive Stance": ["Basic Dribbling"]}

SAMPLE_QUIZZES: List[Quiz] = [
    Quiz(
        title="Basic Dribbling Knowledge Check",
        description="Test your understanding of fundamental dribbling techniques and concepts.",
        difficulty="introduction",
        time_limit=10,
        passing_score=70,
        max_attempts=3,
        allow_review=True,
        shuffle_questions=False,
        show_answers_after_completion=True,
    ),
    Quiz(
        title="Shooting Form Assessment",
        description="Evaluate your knowledge of proper shooting mechanics and techniques.",
        difficulty="introduction",
        time_limit=15,
        passing_score=75,
        max_attempts=3,
        allow_review=True,
        shuffle_questions=True,
        show_answers_after_completion=True,
    ),
]

# quiz title -> skill name
QUIZ_SKILLS: Dict[str, str] = {
    "Basic Dribbling Knowledge Check": "Basic Dribbling",
    "Shooting Form Assessment": "Shooting Form",
}

SAMPLE_QUIZ_QUESTIONS: List[QuizQuestion] = [
    QuizQuestion(
        type="multiple_choice",
        question="What part of your hand should you use when dribbling a basketball?",
        options=["Palm", "Fingertips", "Knuckles", "Whole hand"],
        correct_answer="Fingertips",
        explanation="Using your fingertips gives you better control and feel for the ball.",
        order=1,
        tags=["dribbling", "technique"],
    ),
    QuizQuestion(
        type="true_false",
        question="You should always keep your head down when dribbling to watch the ball.",
        options=["True", "False"],
        correct_answer="False",
        explanation="Keep your head up to see the court, teammates, and defenders.",
        order=2,
        tags=["dribbling", "awareness"],
    ),
    QuizQuestion(
        type="multiple_choice",
        question='What does the "E" in the B.E.E.F. shooting method stand for?',
        options=["Effort", "Eyes", "Energy", "Elevation"],
        correct_answer="Eyes",
        explanation='In the B.E.E.F. method, "Eyes" refers to focusing on the rim throughout your shot.',
        order=1,
        tags=["shooting", "technique"],
    ),
    QuizQuestion(
        type="multiple_choice",
        question="Where should your shooting elbow be positioned?",
        options=["Pointing outward", "Under the ball pointing to the rim", "Against your side", "Above your head"],
        correct_answer="Under the ball pointing to the rim",
        explanation="Your elbow should be directly under the ball and pointing toward the rim.",
        order=2,
        tags=["shooting", "form"],
    ),
]

# question index -> quiz title
QUESTION_QUIZZES: List[str] = [
    "Basic Dribbling Knowledge Check",
    "Basic Dribbling Knowledge Check",
    "Shooting Form Assessment",
    "Shooting Form Assessment",
]

# Achievements whose criteria carry an empty sportId get SKILLS_SPORT's id
SAMPLE_ACHIEVEMENTS: List[Achievement] = [
    Achievement(
        name="First Steps",
        description="Complete your first skill in any sport",
        icon="🎯",
        type="progress",
        criteria={"condition": "skills_completed", "value": 1},
        points=100,
        rarity="common",
    ),
    Achievement(
        name="Basketball Beginner",
        description="Complete 3 basketball skills",
        icon="🏀",
        type="progress",
        criteria={"condition": "sport_skills_completed", "value": 3, "sportId": ""},
        points=250,
        rarity="common",
    ),
    Achievement(
        name="Quiz Master",
        description="Pass 10 quizzes with a score of 90% or higher",
        icon="🎓",
        type="quiz",
        criteria={"condition": "high_score_quizzes", "value": 10},
        points=500,
        rarity="uncommon",
    ),
    Achievement(
        name="Week Warrior",
        description="Maintain a 7-day learning streak",
        icon="🔥",
        type="streak",
        criteria={"condition": "daily_streak", "value": 7},
        points=300,
        rarity="uncommon",
    ),
    Achievement(
        name="Speed Learner",
        description="Complete a skill in under half the estimated time",
        icon="⚡",
        type="time",
        criteria={"condition": "fast_completion", "value": 50},
        points=200,
        rarity="rare",
    ),
    Achievement(
        name="Hidden Master",
        description="Unlock this secret achievement by completing all basketball skills with perfect quiz scores",
        icon="🏆",
        type="special",
        criteria={"condition": "perfect_sport_completion", "value": 100, "sportId": ""},
        points=1000,
        rarity="legendary",
        is_secret=True,
    ),
]

SAMPLE_APP_SETTINGS = AppSettings(
    maintenance_mode=False,
    features_enabled={
        "registration": True,
        "quizzes": True,
        "achievements": True,
        "notifications": True,
        "contentCreation": True,
        "videoLearning": True,
        "socialFeatures": False,
        "analyticsTracking": True,
    },
    supported_languages=["en", "es", "fr", "de", "pt", "zh"],
    max_quiz_attempts=3,
    session_timeout=30,
    cache_settings={
        "userDataTTL": 300000,
        "contentTTL": 600000,
        "quizTTL": 180000,
        "staticAssetsTTL": 86400000,
    },
    rate_limit={"apiCallsPerMinute": 60, "quizAttemptsPerHour": 10, "contentUploadPerDay": 5},
    analytics={
        "trackPageViews": True,
        "trackUserActions": True,
        "trackPerformance": True,
        "dataRetentionDays": 90,
    },
)


__all__ = [
    "ADDITIONAL_SPORTS",
    "QUESTION_QUIZZES",
    "QUIZ_SKILLS",
    "SAMPLE_ACHIEVEMENTS",
    "SAMPLE_APP_SETTINGS",
    "SAMPLE_QUIZZES",
    "SAMPLE_QUIZ_QUESTIONS",
    "SAMPLE_SKILLS",
    "SAMPLE_SPORTS",
    "SKILLS_SPORT",
    "SKILL_PREREQUISITES",
]
