"""Generate sample student or trainer CSV files for trying out uploads."""
import csv
import random
import sys

STUDENT_HEADER = ["Full Name", "Email", "Roll Number", "Degree", "Branch", "Year"]
TRAINER_HEADER = ["Full Name", "Email", "Department", "Specialization"]

FIRST_NAMES = ["Asha", "Ben", "Chen", "Dia", "Eshan", "Farah", "Gopal", "Hana", "Imran", "Jaya"]
LAST_NAMES = ["Rao", "Lee", "Wu", "Kapoor", "Menon", "Iyer", "Das", "Khan", "Patel", "Singh"]
DEGREES = ["B.Tech", "B.Sc", "M.Tech", "MBA"]
BRANCHES = ["CSE", "ECE", "Mechanical", "Civil", "Physics"]
DEPARTMENTS = ["Computer Science", "Electronics", "Mathematics", "Management"]
SPECIALIZATIONS = ["Machine Learning", "Embedded Systems", "Statistics", "Finance", "Networks"]


def _broken(row: list) -> list:
    """Damage one field so the row fails validation."""
    row = list(row)
    choice = random.choice(["email", "name", "year"])
    if choice == "email":
        row[1] = row[1].replace("@", "-at-")
    elif choice == "name":
        row[0] = ""
    elif len(row) == len(STUDENT_HEADER):
        row[5] = "9"
    else:
        row[1] = ""
    return row


def generate_csv(kind: str, num_rows: int, output_file: str, invalid_ratio: float = 0.0) -> None:
    """
    Generate a CSV file of random members.

    Args:
        kind: "students" or "trainers"
        num_rows: Number of data rows to generate
        output_file: Output CSV file path
        invalid_ratio: Share of rows (0..1) to damage on purpose
    """
    header = STUDENT_HEADER if kind == "students" else TRAINER_HEADER
    invalid = 0

    with open(output_file, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(header)

        for i in range(num_rows):
            name = f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}"
            email = f"{name.split()[0].lower()}.{i + 1}@example.edu"
            if kind == "students":
                row = [
                    name,
                    email,
                    f"R{i + 1:06d}",
                    random.choice(DEGREES),
                    random.choice(BRANCHES),
                    str(random.randint(1, 4)),
                ]
            else:
                row = [name, email, random.choice(DEPARTMENTS), random.choice(SPECIALIZATIONS)]

            if random.random() < invalid_ratio:
                row = _broken(row)
                invalid += 1
            writer.writerow(row)

            # Print progress every 10,000 rows
            if (i + 1) % 10000 == 0:
                print(f"Generated {i+1:,} rows...")

    print(f"✅ Generated {num_rows:,} {kind} ({invalid:,} deliberately invalid) in {output_file}")


def main():
    """Main function to parse arguments and generate CSV."""
    if len(sys.argv) < 3 or sys.argv[1] not in ("students", "trainers"):
        print("Usage: python generate_csv.py <students|trainers> <num_rows> [output_file] [invalid_ratio]")
        print("Example: python generate_csv.py students 1000 students_1k.csv 0.05")
        sys.exit(1)

    kind = sys.argv[1]
    num_rows = int(sys.argv[2])
    output_file = sys.argv[3] if len(sys.argv) > 3 else f"{kind}_{num_rows}.csv"
    invalid_ratio = float(sys.argv[4]) if len(sys.argv) > 4 else 0.0

    print(f"Generating {kind} CSV with {num_rows:,} rows...")
    generate_csv(kind, num_rows, output_file, invalid_ratio)


if __name__ == "__main__":
    main()
